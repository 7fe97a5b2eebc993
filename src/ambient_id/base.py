"""Strategy contract and per-detection state.

Every provider implements :class:`DetectionStrategy`:

- ``probe(state)`` decides applicability from ambient state alone and
  returns an instance, or ``None`` meaning "try the next strategy". It
  never raises for absent or unexpected environment values.
- ``detect(audience)`` fetches the token. Once a strategy has declared
  itself applicable, any failure here is a hard error.

Design Principles:
    1. Explicit state: collaborators arrive through DetectionState,
       never through globals
    2. One-shot instances: a strategy is probed, used once, discarded
    3. Secure by default: tokens only ever travel inside IdToken
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from types import TracebackType
from typing import ClassVar, TypeVar

from ambient_id.config import DetectionConfig
from ambient_id.sources import AmbientSource, ProcessAmbientSource
from ambient_id.token import IdToken
from ambient_id.transport import CommandRunner, HttpClient

logger = logging.getLogger(__name__)

S = TypeVar("S", bound="DetectionStrategy")


@dataclass
class DetectionState:
    """Collaborators shared by every strategy within one detection.

    Attributes:
        source: Reader for environment variables and files.
        http: Shared HTTP client.
        runner: Subprocess runner.
        config: Detection configuration.
    """

    source: AmbientSource = field(default_factory=ProcessAmbientSource)
    config: DetectionConfig = field(default_factory=DetectionConfig)
    http: HttpClient | None = None
    runner: CommandRunner = field(default_factory=CommandRunner)

    def __post_init__(self) -> None:
        if self.http is None:
            self.http = HttpClient(
                timeout=self.config.request_timeout,
                retry=self.config.retry,
            )

    @property
    def client(self) -> HttpClient:
        assert self.http is not None
        return self.http

    @classmethod
    def from_environment(
        cls,
        source: AmbientSource | None = None,
        config: DetectionConfig | None = None,
    ) -> DetectionState:
        """Build state for the real process.

        Configuration is read from ``AMBIENT_ID_*`` variables unless
        ``config`` is given.
        """
        source = source or ProcessAmbientSource()
        return cls(
            source=source,
            config=config or DetectionConfig.from_source(source),
        )

    async def close(self) -> None:
        await self.client.close()

    async def __aenter__(self) -> DetectionState:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


class DetectionStrategy(ABC):
    """Abstract base class for ambient credential strategies.

    Subclasses must define:
    - name / display_name class attributes
    - probe(): applicability check
    - detect(): token retrieval
    """

    name: ClassVar[str]
    display_name: ClassVar[str]

    @classmethod
    @abstractmethod
    def probe(cls: type[S], state: DetectionState) -> S | None:
        """Return an instance if this strategy applies, else None."""
        pass

    @abstractmethod
    async def detect(self, audience: str) -> IdToken:
        """Obtain an ID token for ``audience``.

        Raises:
            ProviderError: If the token cannot be obtained.
        """
        pass

    def _token(self, value: str) -> IdToken:
        return IdToken(value, provider=self.name)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


def env_flag(source: AmbientSource, name: str) -> bool:
    """True only when ``name`` is set to exactly ``"true"``."""
    return source.getenv(name) == "true"
