"""Ambient credential detection engine.

Strategies are tried strictly in this order:

    1. GitHub Actions
    2. GitLab CI
    3. BuildKite
    4. CircleCI
    5. GCP

The first strategy whose probe reports it applies gets exactly one
``detect()`` call, and its outcome is final: a failure is raised as
:class:`~ambient_id.errors.DetectionError` and later strategies are not
consulted. If no strategy applies, ``detect()`` returns ``None``.
"""

from __future__ import annotations

import asyncio
import logging

from ambient_id.base import DetectionState, DetectionStrategy
from ambient_id.errors import DetectionError, ProviderError
from ambient_id.gcp import Gcp
from ambient_id.providers import BuildKite, CircleCI, GitHubActions, GitLabCI
from ambient_id.token import IdToken

logger = logging.getLogger(__name__)

#: Detection order. Platform signals are expected to be mutually
#: exclusive; the order only settles ambiguous environments.
STRATEGIES: tuple[type[DetectionStrategy], ...] = (
    GitHubActions,
    GitLabCI,
    BuildKite,
    CircleCI,
    Gcp,
)


async def detect(
    audience: str,
    *,
    state: DetectionState | None = None,
) -> IdToken | None:
    """Detect ambient OIDC credentials in the current environment.

    Args:
        audience: Becomes the ``aud`` claim of the returned token.
        state: Collaborators to use. When omitted, state is built from the
            process environment and its HTTP session is closed afterwards.

    Returns:
        The detected token, or None if no known environment was detected.

    Raises:
        DetectionError: If an environment was detected but its token
            could not be obtained.
        ConfigurationError: If ``AMBIENT_ID_*`` configuration is invalid.

    Example:
        >>> token = await detect("sigstore")
        >>> if token is not None:
        ...     sign(token.reveal())
    """
    if state is None:
        async with DetectionState.from_environment() as owned:
            return await _detect(audience, owned)
    return await _detect(audience, state)


async def _detect(audience: str, state: DetectionState) -> IdToken | None:
    for strategy_cls in STRATEGIES:
        strategy = strategy_cls.probe(state)
        if strategy is None:
            logger.debug(f"{strategy_cls.display_name}: not detected")
            continue

        logger.info(f"Detected ambient credential provider: {strategy_cls.display_name}")
        try:
            return await strategy.detect(audience)
        except ProviderError as e:
            raise DetectionError(e, strategy_cls.display_name) from e

    logger.debug("No ambient OIDC credentials detected")
    return None


def detect_sync(
    audience: str,
    *,
    state: DetectionState | None = None,
) -> IdToken | None:
    """Synchronous wrapper around :func:`detect`.

    Each call runs its own event loop, so the HTTP session of a supplied
    ``state`` is closed before returning and reopened on the next call.
    Must not be called from a running event loop.
    """
    if state is None:
        return asyncio.run(detect(audience))
    return asyncio.run(_detect_and_close(audience, state))


async def _detect_and_close(audience: str, state: DetectionState) -> IdToken | None:
    try:
        return await _detect(audience, state)
    finally:
        await state.close()


def probe_all(state: DetectionState) -> list[str]:
    """Return the names of every applicable strategy, in detection order.

    Only probes; no tokens are requested.
    """
    return [cls.name for cls in STRATEGIES if cls.probe(state) is not None]
