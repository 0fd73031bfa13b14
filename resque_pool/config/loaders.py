import os
import logging
from pathlib import Path
from string import Template
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

import yaml

import resque_pool.settings as default_settings
from resque_pool.exceptions import ConfigError
from resque_pool.queue_spec import QueueSpec

log = logging.getLogger(__name__)

Configuration = Dict[str, int]
ConfigInput = Union[None, str, "os.PathLike[str]", Mapping[str, Any]]


def merge_config(default: Mapping[str, Any], section: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """
    Shallow union of the default scope and one environment section.
    Keys in `section` override or extend those in `default`.
    """
    merged = dict(default)
    if section:
        merged.update(section)
    return merged


def split_scopes(structure: Mapping[Any, Any]) -> Tuple[Dict[Any, Any], Dict[str, Mapping[str, Any]]]:
    """
    Separates a raw configuration structure into its default scope and its
    environment sections (every top-level value that is itself a mapping).
    """
    default: Dict[str, Any] = {}
    sections: Dict[str, Mapping[str, Any]] = {}
    for key, value in structure.items():
        if isinstance(value, Mapping):
            sections[str(key)] = value
        else:
            default[key] = value
    return default, sections


def normalize_config(raw: Mapping[Any, Any]) -> Configuration:
    """
    Validates a flat mapping of queue spec -> worker count.

    :param raw: The merged mapping produced by a loader.
    :return: A new dictionary with string keys and non-negative int counts.
    :raises ConfigError: If a key is not a valid queue spec or a count is invalid.
    """
    if not isinstance(raw, Mapping):
        raise ConfigError(f"Pool configuration must be a mapping, got {type(raw).__name__}.")

    config: Configuration = {}
    for key, count in raw.items():
        QueueSpec.parse(key)
        if isinstance(count, bool) or not isinstance(count, int):
            raise ConfigError(f"Worker count for '{key}' must be an integer, got {count!r}.")
        if count < 0:
            raise ConfigError(f"Worker count for '{key}' must not be negative, got {count}.")
        config[str(key)] = count
    return config


def choose_config_file() -> Optional[Path]:
    """
    Returns the config file to use when none was given explicitly.

    The path in RESQUE_POOL_CONFIG wins; otherwise the first existing default
    location is used. None means there is no configuration file at all.
    """
    override = os.environ.get(default_settings.CONFIG_PATH_ENV_VAR)
    if override:
        return Path(override)
    for candidate in default_settings.DEFAULT_CONFIG_FILES:
        if candidate.exists():
            return candidate
    return None


def read_config_file(path: Path) -> Mapping[Any, Any]:
    """
    Reads, template-expands and parses a YAML pool configuration file.

    `${NAME}` placeholders are replaced with environment variables before
    parsing; unknown placeholders are left untouched.

    :param path: The configuration file to read.
    :return: The parsed top-level mapping ({} for an empty document).
    :raises ConfigError: If the file is missing, unreadable or not a mapping.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigError(f"Pool configuration file '{path}' does not exist.") from e
    except OSError as e:
        raise ConfigError(f"Could not read pool configuration file '{path}': {e}") from e

    expanded = Template(text).safe_substitute(os.environ)
    try:
        parsed = yaml.safe_load(expanded)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in pool configuration file '{path}': {e}") from e

    if parsed is None:
        return {}
    if not isinstance(parsed, Mapping):
        raise ConfigError(f"Pool configuration file '{path}' must contain a mapping at the top level.")
    return parsed


class FileOrHashLoader:
    """
    Loads the pool configuration from an in-memory mapping or a YAML file.

    The parsed structure is cached until `reset()` is called, so edits to the
    file are only picked up on an explicit reload. A reload that fails leaves
    the previous structure cached.
    """

    def __init__(self, source: ConfigInput = None) -> None:
        self.filename: Optional[Path] = None
        self.static_config: Optional[Mapping[Any, Any]] = None
        if isinstance(source, Mapping):
            self.static_config = dict(source)
        elif isinstance(source, (str, os.PathLike)):
            self.filename = Path(source)
        elif source is not None:
            raise TypeError(f"Cannot load a pool configuration from {type(source).__name__}.")
        self._cache: Optional[Mapping[Any, Any]] = None
        self._stale = False

    def resolve(self, environment: Optional[str] = None) -> Configuration:
        reload = self._cache is None or self._stale
        # One attempt per reset(); a failure falls back to the cached structure.
        self._stale = False
        structure = self._read() if reload else self._cache

        default, sections = split_scopes(structure)
        section = sections.get(environment) if environment is not None else None
        config = normalize_config(merge_config(default, section))
        if reload:
            self._cache = structure
        return config

    def reset(self) -> None:
        """
        Marks the cached structure stale. The next resolve re-reads the
        source and replaces the cache only if the result is valid.
        """
        self._stale = True

    def _read(self) -> Mapping[Any, Any]:
        if self.static_config is not None:
            return self.static_config
        path = self.filename or choose_config_file()
        if path is None:
            log.debug("No pool configuration file found. Using an empty configuration.")
            return {}
        log.info(f"Loading pool configuration from '{path}'")
        return read_config_file(path)

    def __repr__(self) -> str:
        source = self.filename if self.static_config is None else "<mapping>"
        return f"{self.__class__.__name__}({source!r})"


class CustomLoader:
    """
    Wraps an application-supplied resolver.

    The resolver is either a callable taking the environment name or an object
    with a `resolve(environment)` method. If it also has `reset()`, that is
    forwarded before every live reload so it can invalidate its own caches.
    """

    def __init__(self, resolver: Any) -> None:
        if hasattr(resolver, "resolve"):
            self._call: Callable[[Optional[str]], Mapping[Any, Any]] = resolver.resolve
        elif callable(resolver):
            self._call = resolver
        else:
            raise TypeError(
                f"Custom config loader must be callable or expose resolve(), got {type(resolver).__name__}."
            )
        self.resolver = resolver

    def resolve(self, environment: Optional[str] = None) -> Configuration:
        return normalize_config(self._call(environment))

    def reset(self) -> None:
        reset = getattr(self.resolver, "reset", None)
        if callable(reset):
            reset()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.resolver!r})"


def build_config_loader(source: Any = None) -> Union[FileOrHashLoader, CustomLoader]:
    """
    Picks the loader for whatever the caller passed to the Pool.

    :param source: None, a path, a mapping, an existing loader, or a custom resolver.
    :return: A loader exposing `resolve(environment)` and `reset()`.
    """
    if isinstance(source, (FileOrHashLoader, CustomLoader)):
        return source
    if source is None or isinstance(source, (str, os.PathLike, Mapping)):
        return FileOrHashLoader(source)
    return CustomLoader(source)
