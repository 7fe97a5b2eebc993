"""Detection configuration.

Defaults reproduce the provider endpoints exactly. Every field can be
overridden with an ``AMBIENT_ID_``-prefixed environment variable:

    AMBIENT_ID_REQUEST_TIMEOUT=10
    AMBIENT_ID_RETRY_ATTEMPTS=1
    AMBIENT_ID_RETRY_BASE_DELAY=0.5
    AMBIENT_ID_GCP_METADATA_URL=http://169.254.169.254/computeMetadata/v1
    AMBIENT_ID_GCP_IAMCREDENTIALS_URL=https://iamcredentials.googleapis.com/v1
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable, TypeVar

from ambient_id.errors import ConfigurationError
from ambient_id.retry import RetryConfig
from ambient_id.sources import AmbientSource

ENV_PREFIX = "AMBIENT_ID_"

GCP_METADATA_URL = "http://metadata/computeMetadata/v1"
GCP_IAMCREDENTIALS_URL = "https://iamcredentials.googleapis.com/v1"
GCP_PRODUCT_NAME_FILE = "/sys/class/dmi/id/product_name"

T = TypeVar("T")


@dataclass(frozen=True)
class DetectionConfig:
    """Configuration shared by all strategies within one detection.

    Attributes:
        request_timeout: Total timeout per HTTP request, in seconds.
        retry: Retry policy for transient HTTP failures.
        gcp_metadata_url: Base URL of the GCP metadata server.
        gcp_iamcredentials_url: Base URL of the IAM Credentials API.
        product_name_file: DMI file identifying the host product.
    """

    request_timeout: float = 30.0
    retry: RetryConfig = field(default_factory=RetryConfig)
    gcp_metadata_url: str = GCP_METADATA_URL
    gcp_iamcredentials_url: str = GCP_IAMCREDENTIALS_URL
    product_name_file: str = GCP_PRODUCT_NAME_FILE

    def __post_init__(self) -> None:
        if self.request_timeout <= 0:
            raise ConfigurationError(
                "request timeout must be positive", field="request_timeout"
            )

    @classmethod
    def from_source(cls, source: AmbientSource) -> DetectionConfig:
        """Build a configuration from ``AMBIENT_ID_*`` variables.

        Raises:
            ConfigurationError: If a variable cannot be parsed.
        """
        config = cls()

        timeout = _read(source, "REQUEST_TIMEOUT", float)
        if timeout is not None:
            config = replace(config, request_timeout=timeout)

        attempts = _read(source, "RETRY_ATTEMPTS", int)
        base_delay = _read(source, "RETRY_BASE_DELAY", float)
        if attempts is not None or base_delay is not None:
            retry = config.retry
            try:
                if attempts is not None:
                    retry = replace(retry, max_attempts=attempts)
                if base_delay is not None:
                    retry = replace(
                        retry,
                        base_delay=base_delay,
                        max_delay=max(retry.max_delay, base_delay),
                    )
            except ValueError as e:
                raise ConfigurationError(str(e), field="retry") from e
            config = replace(config, retry=retry)

        metadata_url = source.getenv(f"{ENV_PREFIX}GCP_METADATA_URL")
        if metadata_url:
            config = replace(config, gcp_metadata_url=metadata_url.rstrip("/"))

        iam_url = source.getenv(f"{ENV_PREFIX}GCP_IAMCREDENTIALS_URL")
        if iam_url:
            config = replace(config, gcp_iamcredentials_url=iam_url.rstrip("/"))

        return config


def _read(source: AmbientSource, key: str, parse: Callable[[str], T]) -> T | None:
    name = f"{ENV_PREFIX}{key}"
    raw = source.getenv(name)
    if raw is None or raw == "":
        return None
    try:
        return parse(raw)
    except ValueError as e:
        raise ConfigurationError(f"cannot parse {raw!r}", field=name) from e
