"""Ambient state sources.

Strategies never read ``os.environ`` or the filesystem directly. They go
through an :class:`AmbientSource`, which lets tests and embedders supply
fixed values without mutating process state.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class AmbientSource(Protocol):
    """Read-only view of the process environment and filesystem."""

    def getenv(self, name: str) -> str | None:
        """Return the environment variable ``name``, or None if unset."""
        ...

    def read_text(self, path: str) -> str | None:
        """Return the contents of ``path``, or None if it cannot be read."""
        ...


class ProcessAmbientSource:
    """AmbientSource backed by the real process environment."""

    def getenv(self, name: str) -> str | None:
        return os.environ.get(name)

    def read_text(self, path: str) -> str | None:
        try:
            return Path(path).read_text()
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Could not read {path}: {e}")
            return None

    def __repr__(self) -> str:
        return "ProcessAmbientSource()"


class StaticAmbientSource:
    """AmbientSource backed by fixed mappings.

    Example:
        >>> source = StaticAmbientSource(
        ...     env={"GITLAB_CI": "true", "SIGSTORE_ID_TOKEN": "..."},
        ...     files={"/sys/class/dmi/id/product_name": "Google\\n"},
        ... )
    """

    def __init__(
        self,
        env: Mapping[str, str] | None = None,
        files: Mapping[str, str] | None = None,
    ) -> None:
        self._env = dict(env or {})
        self._files = dict(files or {})

    def getenv(self, name: str) -> str | None:
        return self._env.get(name)

    def read_text(self, path: str) -> str | None:
        return self._files.get(path)

    def __repr__(self) -> str:
        # Values may be secrets; only show names.
        return (
            f"StaticAmbientSource(env={sorted(self._env)!r}, "
            f"files={sorted(self._files)!r})"
        )
