"""
Pool configuration package.

This package resolves the active environment name and loads the flat
queue spec -> worker count mapping from a YAML file, a mapping, or an
application-supplied resolver.
"""

from .environment import ENVIRONMENT_SOURCES, resolve_environment
from .loaders import (
    Configuration,
    CustomLoader,
    FileOrHashLoader,
    build_config_loader,
    choose_config_file,
    merge_config,
    normalize_config,
)

__all__ = [
    "ENVIRONMENT_SOURCES",
    "resolve_environment",
    "Configuration",
    "CustomLoader",
    "FileOrHashLoader",
    "build_config_loader",
    "choose_config_file",
    "merge_config",
    "normalize_config",
]
