"""Built-in pipeline modules.

Key functions:
- create_modules: Instantiate modules by id, in the given order.
"""

from __future__ import annotations

from collections.abc import Iterable

from ..errors import TrellisError
from ..pipeline import Module
from .blog import BlogModule
from .default import DefaultModule
from .external import ExternalModule
from .media import MediaModule
from .model import ModelModule

MODULES: dict[str, type[Module]] = {
    "blog": BlogModule,
    "media": MediaModule,
    "external": ExternalModule,
    "model": ModelModule,
    "default": DefaultModule,
}

DEFAULT_MODULES = ("blog", "media", "external", "model", "default")


def create_modules(names: Iterable[str] = DEFAULT_MODULES) -> list[Module]:
    """Instantiate modules by id.

    Args:
        names: Module ids in registration order.

    Returns:
        Fresh module instances; modules keep per-build state.

    Raises:
        TrellisError: If an id is unknown.
    """
    modules = []
    for name in names:
        try:
            modules.append(MODULES[name]())
        except KeyError:
            known = ", ".join(sorted(MODULES))
            raise TrellisError(f"unknown module {name!r} (known: {known})") from None
    return modules


__all__ = [
    "MODULES",
    "DEFAULT_MODULES",
    "BlogModule",
    "DefaultModule",
    "ExternalModule",
    "MediaModule",
    "ModelModule",
    "create_modules",
]
