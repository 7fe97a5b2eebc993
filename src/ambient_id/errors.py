"""Exception hierarchy for ambient credential detection.

Every strategy failure is a :class:`ProviderError` subclass describing
*which* step failed. The detection engine wraps it in a single
:class:`DetectionError` so callers can catch one type, while the original
provider error (and its own underlying cause) stays reachable through the
exception chain:

    >>> try:
    ...     token = await detect("sigstore")
    ... except DetectionError as e:
    ...     e.provider            # "gcp"
    ...     e.error               # ExchangeRequestError(...)
    ...     e.error.__cause__     # HttpStatusError(status=403, ...)

None of these exceptions ever carry token material in their message.
"""

from __future__ import annotations


class AmbientIdError(Exception):
    """Base exception for ambient-id errors."""

    pass


class ConfigurationError(AmbientIdError):
    """Raised when a configuration value is invalid."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        msg = f"configuration error: {message}"
        if field:
            msg += f" (field: {field})"
        super().__init__(msg)


# =============================================================================
# Provider Errors
# =============================================================================


class ProviderError(AmbientIdError):
    """Raised when an applicable strategy fails to produce a token."""

    def __init__(self, message: str, provider: str) -> None:
        self.provider = provider
        super().__init__(message)


class InsufficientPermissionsError(ProviderError):
    """A CI-injected variable needed to request a token is absent.

    On GitHub Actions this is typically resolved by adding
    ``id-token: write`` to the job's ``permissions`` block.
    """

    def __init__(self, variable: str, provider: str = "github-actions") -> None:
        self.variable = variable
        super().__init__(f"insufficient permissions: missing {variable}", provider)


class RequestError(ProviderError):
    """The HTTP request for the ID token failed."""

    def __init__(self, message: str, provider: str = "github-actions") -> None:
        super().__init__(f"HTTP request failed: {message}", provider)


class MissingVariableError(ProviderError):
    """The audience-specific ID token variable is not set."""

    def __init__(self, variable: str, provider: str = "gitlab-ci") -> None:
        self.variable = variable
        super().__init__(f"ID token variable not found: {variable}", provider)


class ExecutionError(ProviderError):
    """A token-issuing CLI could not be run or exited unsuccessfully."""

    def __init__(
        self,
        command: str,
        provider: str,
        *,
        returncode: int | None = None,
        signal: int | None = None,
        stderr: str = "",
        reason: str | None = None,
    ) -> None:
        self.command = command
        self.returncode = returncode
        self.signal = signal
        self.stderr = stderr
        self.reason = reason

        if signal is not None:
            detail = f"terminated by signal {signal}"
        elif returncode is not None:
            detail = f"exited with code {returncode}"
        else:
            detail = "could not be executed"
            if reason:
                detail += f" ({reason})"
        msg = f"failed to obtain OIDC token from `{command}`: {detail}"
        if stderr:
            msg += f": {stderr}"
        super().__init__(msg, provider)


class InvalidIdentifierError(ProviderError):
    """The configured GCP service account name is not valid text."""

    def __init__(self, identifier: str, provider: str = "gcp") -> None:
        self.identifier = identifier
        super().__init__(
            f"invalid GOOGLE_SERVICE_ACCOUNT_NAME value: {identifier!r}",
            provider,
        )


class AccessTokenRequestError(ProviderError):
    """Requesting an access token from the metadata server failed."""

    def __init__(self, message: str, provider: str = "gcp") -> None:
        super().__init__(f"failed to request access token: {message}", provider)


class ExchangeRequestError(ProviderError):
    """Exchanging the access token for an impersonated ID token failed."""

    def __init__(self, message: str, provider: str = "gcp") -> None:
        super().__init__(f"failed to exchange access token for ID token: {message}", provider)


class DirectRequestError(ProviderError):
    """Requesting an ID token directly from the metadata server failed."""

    def __init__(self, message: str, provider: str = "gcp") -> None:
        super().__init__(f"failed to request ID token: {message}", provider)


# =============================================================================
# Top-level Error
# =============================================================================


class DetectionError(AmbientIdError):
    """Raised by :func:`ambient_id.detect` when the selected strategy fails.

    Attributes:
        provider: Name of the strategy that failed.
        display_name: Human-readable strategy label.
        error: The original provider error (also ``__cause__``).
    """

    def __init__(self, error: ProviderError, display_name: str) -> None:
        self.provider = error.provider
        self.display_name = display_name
        self.error = error
        super().__init__(f"{display_name} detection error: {error}")
        self.__cause__ = error
