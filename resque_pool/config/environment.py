"""
Resolution of the active configuration environment.

The environment name selects which nested section of the pool configuration
is merged over the default scope. It is looked up fresh on every configuration
load, trying each source in a fixed order and stopping at the first defined value.
"""

import os
import sys
import logging
from typing import Callable, Optional, Sequence

import resque_pool.settings as default_settings
from resque_pool.global_config import pool_globals

log = logging.getLogger(__name__)

EnvironmentSource = Callable[[], Optional[str]]


def _defined(value: object) -> Optional[str]:
    if value is None:
        return None
    value = str(value)
    return value or None


def explicit_constant() -> Optional[str]:
    """The process-wide RAILS_ENV value installed by an embedding application."""
    return _defined(pool_globals.RAILS_ENV)


def ambient_accessor() -> Optional[str]:
    """
    A Rails-style host module exposing `env`, if one has been registered.

    The module is probed in `sys.modules` rather than imported, so nothing is
    assumed to exist.
    """
    host = sys.modules.get(default_settings.AMBIENT_ENV_MODULE)
    if host is None or not hasattr(host, "env"):
        return None
    env = host.env
    if callable(env):
        env = env()
    return _defined(env)


def env_var(name: str) -> EnvironmentSource:
    """Builds a source reading one environment variable at call time."""
    def source() -> Optional[str]:
        return _defined(os.environ.get(name))
    source.__name__ = f"env_var_{name}"
    return source


ENVIRONMENT_SOURCES: Sequence[EnvironmentSource] = (
    explicit_constant,
    ambient_accessor,
    *(env_var(name) for name in default_settings.ENVIRONMENT_ENV_VARS),
)


def resolve_environment(sources: Sequence[EnvironmentSource] = ENVIRONMENT_SOURCES) -> Optional[str]:
    """
    Returns the first environment name defined by `sources`, or None.

    :param sources: Zero-argument callables tried in precedence order.
    :return: The environment name, or None when only the default scope applies.
    """
    for source in sources:
        environment = source()
        if environment is not None:
            log.debug(f"Resolved environment '{environment}' from {source.__name__}.")
            return environment
    return None
