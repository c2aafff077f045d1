"""Canonical source locators.

A Locator is the deduplication key of a site node: an absolute normalized
filesystem path, an absolute URL without fragment, or the name of a
resource generated during the build.

Functions:
    is_remote_reference: Check whether a raw reference is an http(s) URL.
    has_foreign_scheme: Check for non-fetchable schemes (mailto:, data:, ...).
    strip_fragment: Remove the fragment (and the query for local paths).
    is_page_reference: Check whether a reference points at a source document.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urldefrag, urljoin, urlparse

_SCHEME_RE = re.compile(r"^([A-Za-z][A-Za-z0-9+.-]*):")


class LocatorKind(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"
    GENERATED = "generated"


def is_remote_reference(reference: str) -> bool:
    """Check whether a raw reference is an absolute http(s) URL."""
    if reference.startswith("//"):
        return True
    return urlparse(reference).scheme in ("http", "https")


def has_foreign_scheme(reference: str) -> bool:
    """Check whether a reference uses a scheme that cannot be fetched.

    Examples:
        >>> has_foreign_scheme("mailto:me@example.com")
        True
        >>> has_foreign_scheme("images/logo.png")
        False
    """
    match = _SCHEME_RE.match(reference)
    if match is None:
        return False
    scheme = match.group(1).lower()
    # Single letters are Windows drive names, not schemes.
    return len(scheme) > 1 and scheme not in ("http", "https")


def strip_fragment(reference: str) -> str:
    """Remove the fragment of a reference, and the query of a local one."""
    if is_remote_reference(reference):
        return urldefrag(reference)[0]
    return reference.split("#", 1)[0].split("?", 1)[0]


def fragment_of(reference: str) -> str:
    """Return ``#fragment`` of a reference, or an empty string."""
    _, sep, fragment = reference.partition("#")
    return f"#{fragment}" if sep else ""


def is_page_reference(reference: str, source_extension: str) -> bool:
    """Check whether a reference points at a source document."""
    path = reference.split("#", 1)[0].split("?", 1)[0]
    return path.lower().endswith(source_extension.lower())


@dataclass(frozen=True, order=True)
class Locator:
    """Canonical identity of a page or resource.

    Attributes:
        kind: LOCAL, REMOTE or GENERATED.
        value: Absolute path, absolute URL, or generated resource name.
    """

    kind: LocatorKind
    value: str

    @classmethod
    def local(cls, path: Path | str) -> Locator:
        return cls(LocatorKind.LOCAL, os.path.normpath(os.path.abspath(str(path))))

    @classmethod
    def remote(cls, url: str) -> Locator:
        if url.startswith("//"):
            url = f"https:{url}"
        return cls(LocatorKind.REMOTE, urldefrag(url)[0])

    @classmethod
    def generated(cls, name: str) -> Locator:
        return cls(LocatorKind.GENERATED, name)

    @property
    def is_local(self) -> bool:
        return self.kind is LocatorKind.LOCAL

    @property
    def is_remote(self) -> bool:
        return self.kind is LocatorKind.REMOTE

    @property
    def is_generated(self) -> bool:
        return self.kind is LocatorKind.GENERATED

    @property
    def path(self) -> Path:
        """Filesystem path of a local locator."""
        if not self.is_local:
            raise ValueError(f"{self} is not a local locator")
        return Path(self.value)

    @property
    def filename(self) -> str:
        """Last path segment, URL-decoded for remote locators."""
        if self.is_remote:
            return unquote(PurePosixPath(urlparse(self.value).path).name)
        return PurePosixPath(self.value.replace(os.sep, "/")).name

    @property
    def extension(self) -> str:
        """Lower-cased suffix of the last path segment, including the dot."""
        return PurePosixPath(self.filename).suffix.lower()

    def join(self, reference: str) -> Locator:
        """Resolve a relative reference against this locator's directory.

        Args:
            reference: Reference without fragment.

        Returns:
            The canonical locator of the reference.
        """
        if is_remote_reference(reference):
            return Locator.remote(reference)
        if self.is_remote:
            return Locator.remote(urljoin(self.value, reference))
        if self.is_generated:
            raise ValueError(f"cannot resolve {reference!r} against generated {self}")
        return Locator.local(os.path.join(os.path.dirname(self.value), unquote(reference)))

    def __str__(self) -> str:
        if self.is_generated:
            return f"<generated {self.value}>"
        return self.value
