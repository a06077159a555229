"""Exception hierarchy for specref.

All exceptions inherit from :class:`SpecrefError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`specref.exit_codes`.
Library code only raises; the top-level error handler in
:func:`specref.app.main` catches ``SpecrefError`` and exits with the
appropriate code.

Subclass hierarchy::

    SpecrefError (exit 1)
    +-- InvalidUsageError         (exit 2)
    +-- DocumentIOError           (exit 3)
    +-- NetworkError              (exit 4)
    +-- DocumentParseError        (exit 5)
    +-- ReferenceResolutionError  (exit 6)
    |   +-- CyclicReferenceError  (exit 6)
    +-- ConfigError               (exit 1)
"""

from __future__ import annotations

from typing import Optional

from specref.exit_codes import (
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_IO_ERROR,
    EXIT_NETWORK_ERROR,
    EXIT_PARSE_ERROR,
    EXIT_REFERENCE_ERROR,
)


class SpecrefError(Exception):
    """Base exception for all specref errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`specref.exit_codes`.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code

    def add_context(self, context: str) -> None:
        """Append *context* to the message, keeping the exception type intact."""
        message = self.args[0] if self.args else ""
        self.args = (f"{message} ({context})", *self.args[1:])


class InvalidUsageError(SpecrefError):
    """Raised for invalid CLI arguments or malformed key patterns."""

    exit_code = EXIT_INVALID_USAGE


class DocumentIOError(SpecrefError):
    """Raised when a local document cannot be read (missing file, permissions)."""

    exit_code = EXIT_IO_ERROR


class NetworkError(SpecrefError):
    """Raised when a remote document cannot be fetched.

    Covers DNS and connection failures, timeouts, unsupported URL schemes,
    and non-2xx responses. ``status_code`` is set when the server answered.
    """

    exit_code = EXIT_NETWORK_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DocumentParseError(SpecrefError):
    """Raised when document bytes are not valid YAML or JSON."""

    exit_code = EXIT_PARSE_ERROR


class ReferenceResolutionError(SpecrefError):
    """Raised when a reference fragment cannot be walked to completion.

    Attributes:
        ref: The reference string as given by the caller.
        base: The base locator the reference was resolved against.
        segment: The fragment segment that failed, or ``None`` when the
            failure is not tied to a single segment.
    """

    exit_code = EXIT_REFERENCE_ERROR

    def __init__(
        self,
        message: str,
        ref: str,
        base: str,
        segment: Optional[str] = None,
    ):
        super().__init__(f"{message} (ref '{ref}' from '{base}')")
        self.ref = ref
        self.base = base
        self.segment = segment


class CyclicReferenceError(ReferenceResolutionError):
    """Raised when inlining references meets a reference already being inlined.

    Attributes:
        chain: The ``locator#ref`` entries forming the cycle, outermost first.
    """

    def __init__(self, ref: str, base: str, chain: list[str]):
        super().__init__(
            "Cyclic reference: " + " -> ".join(chain), ref=ref, base=base
        )
        self.chain = chain


class ConfigError(SpecrefError):
    """Raised for configuration problems (invalid JSON, bad values)."""

    exit_code = EXIT_GENERIC_FAILURE
