"""Configuration handling for Trellis.

Two layers of configuration exist:

- Page configuration: the TOML front-matter table of a page. Modules resolve
  their own namespace of it against a dataclass schema with ``PageConfig.resolve``.
  Namespaces nobody asked for stay untouched in ``PageConfig.raw``.
- Project configuration: an optional ``trellis.yaml`` next to the entry
  document with build settings, loaded by ``load_config``.

Key classes:
- PageConfig: Raw front matter plus typed resolution.

Key functions:
- parse_date: Normalize a calendar date or timestamp to an aware UTC datetime.
- load_config: Load project configuration from trellis.yaml.
"""

from __future__ import annotations

import logging
import types
from dataclasses import dataclass, field, fields, is_dataclass, replace
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar, Union, get_args, get_origin, get_type_hints

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONFIG_FILENAME = "trellis.yaml"

DEFAULT_CONFIG = {
    "output_dir": "build",
    "jobs": 1,
    "minify_js": False,
    "modules": ["blog", "media", "external", "model", "default"],
}


def parse_date(value: Any, key: str | None = None) -> datetime:
    """Normalize a date value to an aware UTC datetime.

    Accepts ``YYYY-MM-DD`` strings, ISO 8601 / RFC 3339 timestamps with or
    without an offset, and TOML native dates and datetimes. Values without
    a timezone are taken to be UTC.

    Args:
        value: The value to convert.
        key: Dotted option key used in error messages.

    Returns:
        A timezone-aware datetime in UTC.

    Raises:
        ConfigError: If the value is not a recognizable date.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            try:
                parsed = datetime.strptime(text, "%Y-%m-%d")
            except ValueError:
                raise ConfigError(f"expected a date, got {value!r}", key) from None
    else:
        raise ConfigError(f"expected a date, got {type(value).__name__}", key)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _type_name(hint: Any) -> str:
    return getattr(hint, "__name__", str(hint))


def _coerce(value: Any, hint: Any, key: str) -> Any:
    """Check and convert a raw TOML value against a type hint."""
    if hint is Any:
        return value
    origin = get_origin(hint)
    args = get_args(hint)

    if origin in (Union, types.UnionType):
        if value is None:
            return None
        candidates = [arg for arg in args if arg is not type(None)]
        errors: list[ConfigError] = []
        for candidate in candidates:
            try:
                return _coerce(value, candidate, key)
            except ConfigError as exc:
                errors.append(exc)
        raise errors[0]

    if origin is list:
        if not isinstance(value, list):
            raise ConfigError(f"expected a list, got {type(value).__name__}", key)
        item_hint = args[0] if args else Any
        return [_coerce(item, item_hint, f"{key}[{i}]") for i, item in enumerate(value)]

    if origin is dict:
        if not isinstance(value, dict):
            raise ConfigError(f"expected a table, got {type(value).__name__}", key)
        value_hint = args[1] if len(args) == 2 else Any
        return {
            str(name): _coerce(item, value_hint, f"{key}.{name}")
            for name, item in value.items()
        }

    if hint is datetime:
        return parse_date(value, key)

    if hint is bool:
        if not isinstance(value, bool):
            raise ConfigError(f"expected a boolean, got {value!r}", key)
        return value

    if hint is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"expected an integer, got {value!r}", key)
        return value

    if hint is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"expected a number, got {value!r}", key)
        return float(value)

    if hint is str:
        if not isinstance(value, str):
            raise ConfigError(f"expected a string, got {value!r}", key)
        return value

    if isinstance(hint, type) and issubclass(hint, Enum):
        try:
            return hint(value)
        except ValueError:
            choices = ", ".join(str(member.value) for member in hint)
            raise ConfigError(f"expected one of {choices}, got {value!r}", key) from None

    if is_dataclass(hint):
        if not isinstance(value, dict):
            raise ConfigError(f"expected a table, got {type(value).__name__}", key)
        return build_options(hint, value, key)

    raise ConfigError(f"unsupported option type {_type_name(hint)}", key)


def build_options(schema: type[T], table: dict[str, Any], key: str, base: T | None = None) -> T:
    """Merge a raw table over a dataclass schema.

    Args:
        schema: Dataclass whose fields all have defaults.
        table: Raw option table from the front matter.
        key: Dotted namespace of the table, used in messages.
        base: Options to start from instead of the schema defaults.

    Returns:
        A new schema instance.

    Raises:
        ConfigError: If a value has the wrong type.
    """
    start = base if base is not None else schema()
    hints = get_type_hints(schema)
    names = {f.name for f in fields(schema)}
    changes: dict[str, Any] = {}
    for name, value in table.items():
        dotted = f"{key}.{name}"
        if name not in names:
            logger.warning("Ignoring unknown option %s", dotted)
            continue
        hint = hints[name]
        if is_dataclass(hint) and isinstance(value, dict):
            changes[name] = build_options(hint, value, dotted, getattr(start, name))
        else:
            changes[name] = _coerce(value, hint, dotted)
    return replace(start, **changes)


@dataclass
class PageConfig:
    """Front-matter configuration of a single page.

    Attributes:
        raw: The parsed TOML table, keyed by module namespace.
    """

    raw: dict[str, Any] = field(default_factory=dict)

    def namespace(self, path: str) -> dict[str, Any] | None:
        """Return the raw table at a dotted path, or None when absent.

        Raises:
            ConfigError: If the path exists but is not a table.
        """
        current: Any = self.raw
        for part in path.split("."):
            if not isinstance(current, dict) or part not in current:
                return None
            current = current[part]
        if not isinstance(current, dict):
            raise ConfigError(f"expected a table, got {type(current).__name__}", path)
        return current

    def has(self, path: str) -> bool:
        """Check whether a namespace is present in the front matter."""
        return self.namespace(path) is not None

    def resolve(self, path: str, schema: type[T], base: T | None = None) -> T:
        """Resolve a namespace into typed options.

        Args:
            path: Dotted namespace, e.g. ``"default"`` or ``"blog.post"``.
            schema: Dataclass describing the namespace.
            base: Options inherited from elsewhere (e.g. a parent page).

        Returns:
            Instance of ``schema`` with page values merged over ``base`` or
            the schema defaults.

        Raises:
            ConfigError: If a value has the wrong type.
        """
        table = self.namespace(path)
        if table is None:
            return base if base is not None else schema()
        return build_options(schema, table, path, base)


def load_config(project_root: Path) -> dict[str, Any]:
    """Load project configuration from trellis.yaml.

    Args:
        project_root: Directory containing the entry document.

    Returns:
        Dictionary containing configuration values, with defaults applied.
    """
    config_path = project_root / CONFIG_FILENAME
    config = DEFAULT_CONFIG.copy()
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
            if isinstance(loaded, dict):
                config.update(loaded)
            else:
                logger.warning("Ignoring %s: expected a mapping", config_path)
    return config
