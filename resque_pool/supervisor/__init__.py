"""
The Supervisor package.
Manages the lifecycle of the pool's worker processes.

This package contains the central Pool class and its helper modules, which
together handle forking, signalling, reaping and shutting down workers, and
keeping the fleet reconciled with the loaded configuration.
"""
from .supervisor import Pool
from .worker_type import WorkerHandle, WorkerState, WorkerType

__all__ = ['Pool', 'WorkerHandle', 'WorkerState', 'WorkerType']
