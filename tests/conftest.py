"""
Pytest configuration and shared fixtures.

This module provides central pytest configuration, custom markers, and the
shared fixtures used across the resque-pool test suite.
"""

import sys
import itertools
from typing import Callable, Dict, List, Tuple

import pytest

from resque_pool.global_config import pool_globals
from resque_pool.supervisor import process_utils

ENVIRONMENT_VARIABLES = ("RACK_ENV", "RAILS_ENV", "RESQUE_ENV", "RESQUE_POOL_CONFIG")


# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, isolated, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (fork real processes)"
    )


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """
    Every test starts with no environment name set, no ambient Rails module,
    default process-wide settings, and a working directory without any
    default configuration file.
    """
    for name in ENVIRONMENT_VARIABLES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.delitem(sys.modules, "Rails", raising=False)
    monkeypatch.chdir(tmp_path)
    pool_globals.reset()
    yield
    pool_globals.reset()


# =============================================================================
# Process Fakes
# =============================================================================


class FakeProcesses:
    """Records forks and signals instead of touching real processes."""

    def __init__(self) -> None:
        self._pids = itertools.count(1000)
        self.forked: List[int] = []
        self.signals: List[Tuple[int, int]] = []
        self.exited: List[Tuple[int, int]] = []

    def fork_worker(self, run_child: Callable) -> int:
        pid = next(self._pids)
        self.forked.append(pid)
        return pid

    def send_signal(self, pid: int, sig: int) -> bool:
        self.signals.append((pid, sig))
        return True

    def exit(self, pid: int, status: int = 0) -> None:
        """Queues a child exit to be returned by the next reap."""
        self.exited.append((pid, status))

    def reap_children(self) -> List[Tuple[int, int]]:
        reaped, self.exited = self.exited, []
        return reaped

    def signals_for(self, sig: int) -> List[int]:
        return [pid for pid, sent in self.signals if sent == sig]


@pytest.fixture
def fake_processes(monkeypatch) -> FakeProcesses:
    """Replaces fork, signal delivery and reaping with in-memory fakes."""
    fake = FakeProcesses()
    monkeypatch.setattr(process_utils, "fork_worker", fake.fork_worker)
    monkeypatch.setattr(process_utils, "send_signal", fake.send_signal)
    monkeypatch.setattr(process_utils, "reap_children", fake.reap_children)
    monkeypatch.setattr(process_utils, "force_kill", lambda pids: fake.signals.extend((pid, 9) for pid in pids))
    return fake


@pytest.fixture
def no_spawn(monkeypatch):
    """Turns Pool.spawn_worker into a no-op, for configuration-only tests."""
    from resque_pool.supervisor import Pool

    calls: List[Dict] = []
    monkeypatch.setattr(Pool, "spawn_worker", lambda self, worker_type: calls.append({"key": worker_type.key}))
    return calls


@pytest.fixture
def simulate_signal():
    """Clears the pool's signal queue, enqueues one signal and dispatches it."""

    def _simulate(pool, name: str) -> None:
        pool.sig_queue.clear()
        pool.sig_queue.append(name)
        pool.handle_sig_queue()

    return _simulate
