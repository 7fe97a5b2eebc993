"""Google Cloud Platform OIDC token strategy.

Two substrategies, fixed when the strategy is probed:

1. Impersonation - ``GOOGLE_SERVICE_ACCOUNT_NAME`` is set:
   a. fetch an access token for the instance's default service account
      from the metadata server
   b. exchange it at the IAM Credentials API for an ID token issued to
      the named service account
2. Direct - the DMI product name identifies a Google host:
   fetch an ID token for the default service account from the metadata
   server in one call

Each network phase has its own error type so callers can tell which one
failed:

    AccessTokenRequestError   phase 1a
    ExchangeRequestError      phase 1b
    DirectRequestError        phase 2
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union
from urllib.parse import quote

from ambient_id.base import DetectionState, DetectionStrategy
from ambient_id.config import DetectionConfig
from ambient_id.errors import (
    AccessTokenRequestError,
    DirectRequestError,
    ExchangeRequestError,
    InvalidIdentifierError,
)
from ambient_id.token import IdToken
from ambient_id.transport import HttpClient, TransportError

logger = logging.getLogger(__name__)

SERVICE_ACCOUNT_VAR = "GOOGLE_SERVICE_ACCOUNT_NAME"
GCP_PRODUCT_NAMES = frozenset({"Google", "Google Compute Engine"})
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
METADATA_HEADERS = {"Metadata-Flavor": "Google"}


# =============================================================================
# Substrategies
# =============================================================================


@dataclass(frozen=True)
class Impersonation:
    """Obtain an ID token by impersonating the named service account."""

    service_account_name: str


@dataclass(frozen=True)
class Direct:
    """Obtain an ID token for the default service account directly."""

    pass


GcpSubstrategy = Union[Impersonation, Direct]


# =============================================================================
# Strategy
# =============================================================================


class Gcp(DetectionStrategy):
    """GCP metadata-server OIDC token strategy.

    Example:
        >>> state = DetectionState.from_environment()
        >>> gcp = Gcp.probe(state)
        >>> if gcp:
        ...     token = await gcp.detect("sigstore")
    """

    name = "gcp"
    display_name = "GCP"

    def __init__(
        self,
        http: HttpClient,
        substrategy: GcpSubstrategy,
        config: DetectionConfig | None = None,
    ) -> None:
        self._http = http
        self._substrategy = substrategy
        self._config = config or DetectionConfig()

    @property
    def substrategy(self) -> GcpSubstrategy:
        return self._substrategy

    @classmethod
    def probe(cls, state: DetectionState) -> Gcp | None:
        service_account_name = state.source.getenv(SERVICE_ACCOUNT_VAR)
        if service_account_name:
            logger.debug(f"GCP: {SERVICE_ACCOUNT_VAR} set; using impersonation")
            return cls(state.client, Impersonation(service_account_name), state.config)

        product_name = state.source.read_text(state.config.product_name_file)
        if product_name is None:
            logger.debug("GCP: no product name file; giving up")
            return None

        product_name = product_name.strip()
        if product_name not in GCP_PRODUCT_NAMES:
            logger.debug(f"GCP: product name is {product_name!r}; giving up")
            return None

        return cls(state.client, Direct(), state.config)

    async def detect(self, audience: str) -> IdToken:
        substrategy = self._substrategy
        if isinstance(substrategy, Impersonation):
            return await self._detect_impersonated(substrategy.service_account_name, audience)
        if isinstance(substrategy, Direct):
            return await self._detect_direct(audience)
        raise TypeError(f"unknown GCP substrategy: {substrategy!r}")

    # -- Impersonation ---------------------------------------------------------

    def _validated_identifier(self, service_account_name: str) -> str:
        # Undecodable environment bytes surface as lone surrogates.
        try:
            service_account_name.encode("utf-8")
        except UnicodeEncodeError as e:
            raise InvalidIdentifierError(service_account_name, provider=self.name) from e
        return service_account_name

    async def _detect_impersonated(self, service_account_name: str, audience: str) -> IdToken:
        service_account_name = self._validated_identifier(service_account_name)

        logger.debug("GCP: requesting access token")
        try:
            response = await self._http.request(
                "GET",
                f"{self._config.gcp_metadata_url}/instance/service-accounts/default/token",
                params={"scopes": CLOUD_PLATFORM_SCOPE},
                headers=METADATA_HEADERS,
            )
            access_token = response.raise_for_status().require_str("access_token")
        except TransportError as e:
            raise AccessTokenRequestError(str(e), provider=self.name) from e

        logger.debug(f"GCP: requesting OIDC token for {service_account_name}")
        url = (
            f"{self._config.gcp_iamcredentials_url}/projects/-/serviceAccounts/"
            f"{quote(service_account_name, safe='@')}:generateIdToken"
        )
        try:
            response = await self._http.request(
                "POST",
                url,
                headers={"Authorization": f"Bearer {access_token}"},
                json={"audience": audience, "includeEmail": True},
            )
            token = response.raise_for_status().require_str("token")
        except TransportError as e:
            raise ExchangeRequestError(str(e), provider=self.name) from e

        logger.debug("GCP: successfully requested OIDC token")
        return self._token(token)

    # -- Direct ----------------------------------------------------------------

    async def _detect_direct(self, audience: str) -> IdToken:
        logger.debug("GCP: requesting OIDC token")
        try:
            response = await self._http.request(
                "GET",
                f"{self._config.gcp_metadata_url}/instance/service-accounts/default/identity",
                params={"audience": audience, "format": "full"},
                headers=METADATA_HEADERS,
            )
            token = response.raise_for_status().text()
        except TransportError as e:
            raise DirectRequestError(str(e), provider=self.name) from e

        logger.debug("GCP: successfully requested OIDC token")
        return self._token(token)

    def __repr__(self) -> str:
        return f"Gcp(substrategy={self._substrategy!r})"
