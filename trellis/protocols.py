"""Protocol definitions for Trellis.

This module defines the collaborator interfaces the compiler core calls but
does not implement itself: reading sources, re-encoding media and writing
the output tree.

These protocols enable:
- Swapping the filesystem or network layer in tests
- Plugging in other media encoders without touching the modules
- Writing the output somewhere other than a local directory
"""

from __future__ import annotations

from abc import abstractmethod
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .locator import Locator


@runtime_checkable
class Fetcher(Protocol):
    """Protocol for reading page and resource sources."""

    @abstractmethod
    def fetch(self, locator: Locator) -> bytes:
        """Read the content behind a locator.

        Args:
            locator: Local or remote locator.

        Returns:
            The raw bytes.

        Raises:
            FetchError: If the source cannot be read.
        """
        ...

    @abstractmethod
    def exists(self, locator: Locator) -> bool:
        """Check whether a locator can be fetched.

        Args:
            locator: Local or remote locator.

        Returns:
            True if the source exists.
        """
        ...


@runtime_checkable
class Transcoder(Protocol):
    """Protocol for media optimization."""

    @abstractmethod
    def can_transcode(self, name: str) -> bool:
        """Check if this transcoder handles files with the given name."""
        ...

    @abstractmethod
    def transcode(self, data: bytes, name: str, options: Any) -> bytes | None:
        """Re-encode a media file.

        Args:
            data: Original file content.
            name: File name, used to pick the format.
            options: Module options controlling quality and size.

        Returns:
            The re-encoded content, or None to keep the original.
        """
        ...


@runtime_checkable
class Writer(Protocol):
    """Protocol for materializing the output tree."""

    @abstractmethod
    def write(self, path: PurePosixPath, data: bytes) -> None:
        """Write one output file.

        Args:
            path: Output path relative to the output root.
            data: File content.
        """
        ...
