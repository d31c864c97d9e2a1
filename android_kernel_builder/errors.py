"""Input validation errors.

These are raised synchronously and abort the run. Failures of external
commands are reported by :class:`android_kernel_builder.process.CommandError`.
"""

from __future__ import annotations

from urllib.parse import urlparse

TRUSTED_GITHUB_HOSTS = frozenset(
    {
        "github.com",
        "raw.githubusercontent.com",
        "gist.githubusercontent.com",
    }
)


class InputValidationError(ValueError):
    """Raised when a run input is rejected."""

    def __init__(self, message: str, code: str = "invalid_input") -> None:
        """Initialize InputValidationError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


class PathTraversalError(InputValidationError):
    """Raised when a path input tries to escape its base directory."""

    def __init__(self, message: str, code: str = "path_traversal") -> None:
        super().__init__(message, code=code)


class UntrustedURLError(InputValidationError):
    """Raised when a script URL is not HTTPS or not on a trusted host."""

    def __init__(self, message: str, code: str = "untrusted_url") -> None:
        super().__init__(message, code=code)


def reject_leading_hyphen(value: str, input_name: str) -> str:
    """Reject values that would be parsed as a command-line option.

    Args:
        value: Input value.
        input_name: Input name used in the error message.

    Returns:
        The value unchanged.

    Raises:
        InputValidationError: If the value starts with a hyphen.
    """
    if value.startswith("-"):
        raise InputValidationError(
            f"{input_name} must not start with a hyphen",
            code="leading_hyphen",
        )
    return value


def validate_trusted_url(url: str, input_name: str) -> str:
    """Check that a script URL is HTTPS and hosted on GitHub.

    Args:
        url: URL to check.
        input_name: Input name used in the error message.

    Returns:
        The URL unchanged.

    Raises:
        InputValidationError: If the URL starts with a hyphen.
        UntrustedURLError: If the URL is not HTTPS or not on a trusted host.
    """
    reject_leading_hyphen(url, input_name)
    parsed = urlparse(url)
    if parsed.scheme != "https":
        raise UntrustedURLError(f"{input_name} must use HTTPS")
    if (parsed.hostname or "").lower() not in TRUSTED_GITHUB_HOSTS:
        raise UntrustedURLError(f"{input_name} must be from trusted GitHub domain")
    return url


__all__ = [
    "InputValidationError",
    "PathTraversalError",
    "TRUSTED_GITHUB_HOSTS",
    "UntrustedURLError",
    "reject_leading_hyphen",
    "validate_trusted_url",
]
