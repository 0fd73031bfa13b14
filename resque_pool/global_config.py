import logging
from typing import Any, Optional
import resque_pool.settings as default_settings
from resque_pool.hooks import HookRegistry

log = logging.getLogger(__name__)


class PoolGlobals:
    """
    A singleton class that houses the process-wide pool configuration.

    An embedding application installs values here once; every Pool built
    afterwards receives them at construction:
    - RAILS_ENV: an explicitly set environment name, highest precedence.
    - config_loader: the loader used by `Pool.create_configured()`.
    - after_prefork: the hooks run in every forked worker.
    - term_behavior / handle_winch: shutdown and WINCH handling.
    """

    def __init__(self) -> None:
        """Initializes the registry with the defaults from settings.py."""
        self.after_prefork = HookRegistry()
        self._load_defaults()

    def _load_defaults(self) -> None:
        self.RAILS_ENV: Optional[str] = None
        self.config_loader: Any = None
        self.term_behavior: str = default_settings.TERM_BEHAVIOR
        self.handle_winch: bool = default_settings.HANDLE_WINCH

    def set_term_behavior(self, behavior: str) -> None:
        """Validates and installs the TERM signal behavior."""
        behavior = behavior.lower()
        if behavior not in default_settings.TERM_BEHAVIORS:
            raise ValueError(
                f"Unknown term behavior '{behavior}'. "
                f"Expected one of: {', '.join(default_settings.TERM_BEHAVIORS)}."
            )
        self.term_behavior = behavior

    def reset(self) -> None:
        """Restores every value to its default and drops all registered hooks."""
        log.debug("Resetting process-wide pool configuration.")
        self.after_prefork.clear()
        self._load_defaults()

# A singleton instance to be imported by other modules
pool_globals = PoolGlobals()
