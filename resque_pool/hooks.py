import logging
from typing import Any, Callable, Iterator, List

log = logging.getLogger(__name__)

Hook = Callable[[Any], Any]


class HookRegistry:
    """
    An ordered list of callbacks run in every freshly forked worker process.

    Hooks run after the fork and before the worker starts consuming its queues,
    each receiving the new worker's handle.
    """

    def __init__(self) -> None:
        self._hooks: List[Hook] = []

    def append(self, hook: Hook) -> Hook:
        """
        Adds a hook to the end of the registry.
        Returns the hook unchanged so this can be used as a decorator.
        """
        if not callable(hook):
            raise TypeError(f"Hook must be callable, got {type(hook).__name__}.")
        self._hooks.append(hook)
        return hook

    def assign(self, hook: Hook) -> None:
        """Replaces every registered hook with exactly this one."""
        if not callable(hook):
            raise TypeError(f"Hook must be callable, got {type(hook).__name__}.")
        self._hooks = [hook]

    def clear(self) -> None:
        self._hooks = []

    def run(self, worker: Any) -> None:
        """Calls each hook once, in registration order."""
        for hook in list(self._hooks):
            log.debug(f"Running after_prefork hook {getattr(hook, '__name__', hook)!r}")
            hook(worker)

    def __iter__(self) -> Iterator[Hook]:
        return iter(list(self._hooks))

    def __len__(self) -> int:
        return len(self._hooks)
