"""
Tests for hooks.py and the after_prefork registration helpers.
"""

import pytest

import resque_pool
from resque_pool.global_config import pool_globals
from resque_pool.hooks import HookRegistry
from resque_pool.supervisor import Pool


@pytest.mark.unit
class TestHookRegistry:
    """Test HookRegistry ordering and replacement."""

    def test_runs_in_registration_order(self):
        """Test every hook runs once, in order, with the worker."""
        calls = []
        registry = HookRegistry()
        for n in range(3):
            registry.append(lambda worker, n=n: calls.append((n, worker)))

        registry.run("w")

        assert calls == [(0, "w"), (1, "w"), (2, "w")]

    def test_append_returns_hook(self):
        """Test append() can be used as a decorator."""
        registry = HookRegistry()

        @registry.append
        def hook(worker):
            pass

        assert callable(hook)
        assert list(registry) == [hook]

    def test_assign_replaces(self):
        """Test assign() leaves exactly one hook."""
        registry = HookRegistry()
        registry.append(lambda worker: None)
        registry.append(lambda worker: None)

        def only(worker):
            pass

        registry.assign(only)

        assert list(registry) == [only]
        assert len(registry) == 1

    def test_clear(self):
        """Test clear() drops every hook."""
        registry = HookRegistry()
        registry.append(lambda worker: None)
        registry.clear()

        assert len(registry) == 0

    @pytest.mark.parametrize("method", ["append", "assign"])
    def test_rejects_non_callable(self, method):
        """Test only callables can be registered."""
        with pytest.raises(TypeError):
            getattr(HookRegistry(), method)("not a hook")

    def test_hook_error_propagates(self):
        """Test a failing hook stops the remaining hooks."""
        calls = []
        registry = HookRegistry()

        def boom(worker):
            raise RuntimeError("boom")

        registry.append(boom)
        registry.append(calls.append)

        with pytest.raises(RuntimeError):
            registry.run("w")
        assert calls == []


@pytest.mark.unit
class TestProcessWideHooks:
    """Test the process-wide registry and its injection into pools."""

    def test_decorator_registers_globally(self):
        """Test resque_pool.after_prefork appends to pool_globals."""

        @resque_pool.after_prefork
        def hook(worker):
            pass

        assert list(pool_globals.after_prefork) == [hook]

    def test_pool_uses_process_wide_registry(self):
        """Test a pool without explicit hooks runs the process-wide ones."""
        calls = []
        pool_globals.after_prefork.append(calls.append)
        pool = Pool({})

        pool.call_after_prefork("worker")

        assert calls == ["worker"]

    def test_injected_registry(self):
        """Test an explicit registry replaces the process-wide one."""
        global_calls, local_calls = [], []
        pool_globals.after_prefork.append(global_calls.append)
        hooks = HookRegistry()
        hooks.append(local_calls.append)

        Pool({}, hooks=hooks).call_after_prefork("worker")

        assert local_calls == ["worker"]
        assert global_calls == []

    def test_reset_clears_hooks(self):
        """Test pool_globals.reset() drops registered hooks."""
        pool_globals.after_prefork.append(lambda worker: None)
        pool_globals.reset()

        assert len(pool_globals.after_prefork) == 0
