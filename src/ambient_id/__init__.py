"""Ambient OIDC credential detection.

Detects whether the process runs inside a known CI or cloud environment
and, if so, obtains a short-lived OIDC ID token for a caller-chosen
audience.

Supported environments:
    - GitHub Actions
    - GitLab CI/CD
    - BuildKite
    - CircleCI
    - Google Cloud (metadata server, optionally impersonating a
      service account)

Example:
    >>> import asyncio
    >>> from ambient_id import detect
    >>>
    >>> token = asyncio.run(detect("sigstore"))
    >>> if token is None:
    ...     print("no ambient credentials")
    ... else:
    ...     upload(token.reveal())
"""

from ambient_id.base import DetectionState, DetectionStrategy
from ambient_id.config import DetectionConfig
from ambient_id.detection import STRATEGIES, detect, detect_sync, probe_all
from ambient_id.errors import (
    AccessTokenRequestError,
    AmbientIdError,
    ConfigurationError,
    DetectionError,
    DirectRequestError,
    ExchangeRequestError,
    ExecutionError,
    InsufficientPermissionsError,
    InvalidIdentifierError,
    MissingVariableError,
    ProviderError,
    RequestError,
)
from ambient_id.gcp import Direct, Gcp, GcpSubstrategy, Impersonation
from ambient_id.providers import (
    BuildKite,
    CircleCI,
    GitHubActions,
    GitLabCI,
    normalize_audience,
)
from ambient_id.retry import RetryConfig
from ambient_id.sources import AmbientSource, ProcessAmbientSource, StaticAmbientSource
from ambient_id.token import IdToken

__version__ = "0.1.0"

__all__ = [
    # Core API
    "detect",
    "detect_sync",
    "probe_all",
    "IdToken",
    "STRATEGIES",
    # State and configuration
    "DetectionState",
    "DetectionConfig",
    "RetryConfig",
    "AmbientSource",
    "ProcessAmbientSource",
    "StaticAmbientSource",
    # Strategies
    "DetectionStrategy",
    "GitHubActions",
    "GitLabCI",
    "BuildKite",
    "CircleCI",
    "Gcp",
    "GcpSubstrategy",
    "Impersonation",
    "Direct",
    "normalize_audience",
    # Exceptions
    "AmbientIdError",
    "ConfigurationError",
    "DetectionError",
    "ProviderError",
    "InsufficientPermissionsError",
    "RequestError",
    "MissingVariableError",
    "ExecutionError",
    "InvalidIdentifierError",
    "AccessTokenRequestError",
    "ExchangeRequestError",
    "DirectRequestError",
]
