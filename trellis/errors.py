"""Exception hierarchy for Trellis.

Every error raised by the compiler derives from TrellisError so callers can
catch the whole family at once. Errors that concern a single page carry the
locator of that page so the CLI can point at the offending file.

Classes:
    TrellisError: Base class for all compiler errors.
    ParseError: A document could not be tokenized.
    ConfigError: A front-matter option is malformed or has the wrong type.
    LocatedError: Base of errors about a single page or resource.
    SiteTreeError: Site discovery violated a structural constraint.
    RenderError: A page could not be rendered.
    BuildError: Fatal build failure with locator context.
    FetchError: A locator could not be read.
    BuildCancelled: The build was abandoned in favour of a newer one.
"""

from __future__ import annotations

from typing import Any


class TrellisError(Exception):
    """Base class for all Trellis errors."""


class ParseError(TrellisError):
    """Raised when a document cannot be tokenized."""


class ConfigError(ParseError):
    """Raised when a configuration value is malformed.

    Attributes:
        key: Dotted path of the offending option (e.g. ``blog.post.created_on``).
    """

    def __init__(self, message: str, key: str | None = None):
        self.key = key
        super().__init__(f"{key}: {message}" if key else message)


class LocatedError(TrellisError):
    """An error about one page or resource.

    ``str()`` prefixes the message with the locator; ``message`` holds it bare.

    Attributes:
        message: Error message without the locator.
        locator: The locator the error concerns, if known.
    """

    def __init__(self, message: str, locator: Any = None):
        self.message = message
        self.locator = locator
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.locator}: {self.message}" if self.locator is not None else self.message


class SiteTreeError(LocatedError):
    """Raised when site discovery fails (escaping links, collisions, unreadable entry)."""


class RenderError(LocatedError):
    """Raised when a single page fails to render."""


class BuildError(TrellisError):
    """Fatal error during a site build with locator context.

    Attributes:
        locator: Locator of the page or resource that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        locator: Any,
        message: str,
        original_error: Exception | None = None,
    ):
        self.locator = locator
        self.message = message
        self.original_error = original_error
        super().__init__(f"{locator}: {message}" if locator is not None else message)


class FetchError(TrellisError):
    """Raised when a locator cannot be read.

    Attributes:
        locator: The locator that could not be fetched.
    """

    def __init__(self, message: str, locator: Any = None):
        self.locator = locator
        super().__init__(message)


class BuildCancelled(TrellisError):
    """Raised when an in-flight build is abandoned by a newer rebuild."""


def format_error_message(exc: BaseException) -> str:
    """Format an exception into a user-friendly error message.

    Args:
        exc: The exception to format.

    Returns:
        A human-readable error message.
    """
    if isinstance(exc, TrellisError):
        return str(exc)
    return f"{type(exc).__name__}: {exc}"


def error_detail(exc: BaseException) -> str:
    """Message of an exception without the locator prefix it may carry.

    Args:
        exc: The exception to describe.

    Returns:
        The bare message of located errors, otherwise format_error_message.
    """
    message = getattr(exc, "message", None)
    if isinstance(exc, TrellisError) and isinstance(message, str):
        return message
    return format_error_message(exc)
