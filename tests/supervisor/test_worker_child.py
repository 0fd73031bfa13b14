"""
Tests for the body of a forked worker (Pool._run_worker).

The child body is run in-process with the fork-side effects patched out:
- Hooks run before the worker runner
- The exit code reflects how the runner finished
- fork_worker always exits the child
"""

import asyncio
from unittest.mock import patch

import pytest

from resque_pool.hooks import HookRegistry
from resque_pool.supervisor import Pool, WorkerState, WorkerType
from resque_pool.supervisor import process_utils, startup


class ChildExit(Exception):
    def __init__(self, code):
        super().__init__(code)
        self.code = code


def run_child(pool, key="foo"):
    """Runs the child body and returns its exit code."""

    def exit_child(code):
        raise ChildExit(code)

    with patch.object(pool.signal_relay, "reset_in_child") as reset, \
            patch.object(startup, "set_worker_title") as set_title, \
            patch.object(process_utils, "exit_child", side_effect=exit_child):
        with pytest.raises(ChildExit) as excinfo:
            pool._run_worker(WorkerType(key))
    reset.assert_called_once_with()
    set_title.assert_called_once()
    return excinfo.value.code


@pytest.mark.unit
class TestWorkerChild:
    """Test what a freshly forked worker does."""

    def test_hooks_run_in_order_before_runner(self):
        """Test every hook sees the handle before the runner starts."""
        calls = []
        hooks = HookRegistry()
        hooks.append(lambda worker: calls.append(("first", worker.state)))
        hooks.append(lambda worker: calls.append(("second", worker.queues)))

        def runner(worker):
            calls.append(("runner", worker.state))

        pool = Pool({}, hooks=hooks, worker_runner=runner)

        assert run_child(pool, "high,low") == 0
        assert calls == [
            ("first", WorkerState.STARTING),
            ("second", ["high", "low"]),
            ("runner", WorkerState.RUNNING),
        ]

    def test_system_exit_code(self):
        """Test a runner calling sys.exit() passes its code through."""

        def runner(worker):
            raise SystemExit(3)

        assert run_child(Pool({}, hooks=HookRegistry(), worker_runner=runner)) == 3

    def test_runner_exception(self):
        """Test a crashing runner exits with status 1."""

        def runner(worker):
            raise RuntimeError("boom")

        assert run_child(Pool({}, hooks=HookRegistry(), worker_runner=runner)) == 1

    def test_hook_exception_skips_runner(self):
        """Test a failing hook aborts the worker before it runs."""
        ran = []
        hooks = HookRegistry()

        @hooks.append
        def boom(worker):
            raise RuntimeError("boom")

        pool = Pool({}, hooks=hooks, worker_runner=ran.append)

        assert run_child(pool) == 1
        assert ran == []

    def test_cancelled_error_does_not_escape(self):
        """Test a BaseException from the runner still ends in exit status 1."""

        def runner(worker):
            raise asyncio.CancelledError()

        assert run_child(Pool({}, hooks=HookRegistry(), worker_runner=runner)) == 1


@pytest.mark.unit
class TestForkWorkerChildSide:
    """Test the child branch of fork_worker never unwinds into the caller."""

    @pytest.fixture
    def in_child(self):
        """Makes os.fork() report the child side and turns os._exit into ChildExit."""

        def exit_now(code):
            raise ChildExit(code)

        with patch.object(process_utils.os, "fork", return_value=0), \
                patch.object(process_utils.os, "_exit", side_effect=exit_now) as exit_mock:
            yield exit_mock

    def test_raising_child_exits(self, in_child):
        """Test a child body raising CancelledError exits with status 1."""

        def body():
            raise asyncio.CancelledError()

        with pytest.raises(ChildExit) as excinfo:
            process_utils.fork_worker(body)

        assert excinfo.value.code == 1

    def test_returning_child_exits(self, in_child):
        """Test a child body that returns still exits with status 1."""
        with pytest.raises(ChildExit) as excinfo:
            process_utils.fork_worker(lambda: None)

        assert excinfo.value.code == 1
        in_child.assert_called_once_with(1)

    def test_reconcile_in_child(self, in_child):
        """Test a cancelled runner in a forked child never reaches the manager's reconcile()."""

        def runner(worker):
            raise asyncio.CancelledError()

        pool = Pool({"foo": 1}, hooks=HookRegistry(), worker_runner=runner)
        with patch.object(pool.signal_relay, "reset_in_child"), \
                patch.object(startup, "set_worker_title"), \
                patch.object(process_utils, "exit_child", side_effect=ChildExit):
            with pytest.raises(ChildExit) as excinfo:
                pool.reconcile()

        assert excinfo.value.code == 1
