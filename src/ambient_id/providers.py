"""CI Provider Strategies.

This module provides ambient OIDC token retrieval for CI/CD platforms:
- GitHub Actions (HTTP request to the runner's token endpoint)
- GitLab CI/CD (pre-minted token in an audience-specific variable)
- BuildKite (``buildkite-agent`` CLI)
- CircleCI (``circleci`` CLI)

Each strategy applies only when its platform variable is exactly
``"true"``.
"""

from __future__ import annotations

import json
import logging
from abc import abstractmethod

from ambient_id.base import DetectionState, DetectionStrategy, env_flag
from ambient_id.errors import (
    ExecutionError,
    InsufficientPermissionsError,
    MissingVariableError,
    RequestError,
)
from ambient_id.sources import AmbientSource
from ambient_id.token import IdToken
from ambient_id.transport import CommandOutput, CommandRunner, HttpClient, TransportError

logger = logging.getLogger(__name__)


# =============================================================================
# GitHub Actions
# =============================================================================


class GitHubActions(DetectionStrategy):
    """GitHub Actions OIDC token strategy.

    The runner injects a pre-authorized request URL and bearer token; both
    are only present when the workflow has ``id-token: write``:

    ```yaml
    permissions:
      id-token: write
    ```

    Errors:
        InsufficientPermissionsError: A request variable is missing.
        RequestError: The token request failed or returned garbage.
    """

    name = "github-actions"
    display_name = "GitHub Actions"

    GITHUB_ACTIONS_VAR = "GITHUB_ACTIONS"
    TOKEN_URL_VAR = "ACTIONS_ID_TOKEN_REQUEST_URL"
    TOKEN_VAR = "ACTIONS_ID_TOKEN_REQUEST_TOKEN"

    def __init__(self, source: AmbientSource, http: HttpClient) -> None:
        self._source = source
        self._http = http

    @classmethod
    def probe(cls, state: DetectionState) -> GitHubActions | None:
        # Per GitHub docs, this is exactly "true" when running in Actions.
        if not env_flag(state.source, cls.GITHUB_ACTIONS_VAR):
            return None
        return cls(state.source, state.client)

    def _require(self, name: str) -> str:
        value = self._source.getenv(name)
        if not value:
            raise InsufficientPermissionsError(name, provider=self.name)
        return value

    async def detect(self, audience: str) -> IdToken:
        url = self._require(self.TOKEN_URL_VAR)
        bearer = self._require(self.TOKEN_VAR)

        logger.debug("GitHub Actions: requesting OIDC token")
        try:
            response = await self._http.request(
                "GET",
                url,
                params={"audience": audience},
                headers={"Authorization": f"Bearer {bearer}"},
            )
            value = response.raise_for_status().require_str("value")
        except TransportError as e:
            raise RequestError(str(e), provider=self.name) from e

        logger.debug("GitHub Actions: successfully requested OIDC token")
        return self._token(value)


# =============================================================================
# GitLab CI
# =============================================================================


def normalize_audience(audience: str) -> str:
    """Normalize an audience into GitLab's ID token variable format.

    ASCII letters and digits are uppercased; every other character,
    including each non-ASCII code point, becomes ``_``.

    Example:
        >>> normalize_audience("sigstore")
        'SIGSTORE'
        >>> normalize_audience("http://test.audience")
        'HTTP___TEST_AUDIENCE'
    """
    return "".join(
        c.upper() if c.isascii() and c.isalnum() else "_" for c in audience
    )


class GitLabCI(DetectionStrategy):
    """GitLab CI OIDC token strategy.

    GitLab mints ID tokens ahead of time into variables named by the job's
    ``id_tokens`` block. For audience ``sigstore`` the job must declare:

    ```yaml
    job:
      id_tokens:
        SIGSTORE_ID_TOKEN:
          aud: sigstore
    ```

    Errors:
        MissingVariableError: ``<AUDIENCE>_ID_TOKEN`` is not set.
    """

    name = "gitlab-ci"
    display_name = "GitLab CI"

    GITLAB_CI_VAR = "GITLAB_CI"

    def __init__(self, source: AmbientSource) -> None:
        self._source = source

    @classmethod
    def probe(cls, state: DetectionState) -> GitLabCI | None:
        if not env_flag(state.source, cls.GITLAB_CI_VAR):
            return None
        return cls(state.source)

    @staticmethod
    def variable_name(audience: str) -> str:
        return f"{normalize_audience(audience)}_ID_TOKEN"

    async def detect(self, audience: str) -> IdToken:
        var_name = self.variable_name(audience)
        logger.debug(f"GitLab CI: looking for {var_name}")

        value = self._source.getenv(var_name)
        if value is None:
            raise MissingVariableError(var_name, provider=self.name)
        return self._token(value)


# =============================================================================
# CLI-backed strategies
# =============================================================================


class _CommandStrategy(DetectionStrategy):
    """Strategy whose token is the stdout of a platform CLI."""

    program: str

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    @abstractmethod
    def _arguments(self, audience: str) -> list[str]:
        """Arguments passed to ``program`` for ``audience``."""
        pass

    async def detect(self, audience: str) -> IdToken:
        logger.debug(f"{self.display_name}: requesting OIDC token via {self.program}")
        try:
            output = await self._runner.run(self.program, *self._arguments(audience))
        except OSError as e:
            raise ExecutionError(self.program, provider=self.name, reason=str(e)) from e

        self._check(output)
        return self._token(output.stdout_text())

    def _check(self, output: CommandOutput) -> None:
        if output.success:
            return
        raise ExecutionError(
            self.program,
            provider=self.name,
            returncode=None if output.signal is not None else output.returncode,
            signal=output.signal,
            stderr=output.stderr_text(),
        )


class BuildKite(_CommandStrategy):
    """BuildKite OIDC token strategy.

    Invokes ``buildkite-agent oidc request-token --audience <audience>``.

    Errors:
        ExecutionError: The agent could not be run, exited non-zero, or
            was killed by a signal.
    """

    name = "buildkite"
    display_name = "BuildKite"
    program = "buildkite-agent"

    BUILDKITE_VAR = "BUILDKITE"

    @classmethod
    def probe(cls, state: DetectionState) -> BuildKite | None:
        if not env_flag(state.source, cls.BUILDKITE_VAR):
            return None
        return cls(state.runner)

    def _arguments(self, audience: str) -> list[str]:
        return ["oidc", "request-token", "--audience", audience]


class CircleCI(_CommandStrategy):
    """CircleCI OIDC token strategy.

    Invokes ``circleci run oidc get --root-issuer --claims '{"aud":...}'``.

    Errors:
        ExecutionError: The CLI could not be run or exited non-zero.
    """

    name = "circleci"
    display_name = "CircleCI"
    program = "circleci"

    CIRCLECI_VAR = "CIRCLECI"

    @classmethod
    def probe(cls, state: DetectionState) -> CircleCI | None:
        if not env_flag(state.source, cls.CIRCLECI_VAR):
            return None
        return cls(state.runner)

    def _arguments(self, audience: str) -> list[str]:
        claims = json.dumps({"aud": audience}, separators=(",", ":"), ensure_ascii=False)
        return ["run", "oidc", "get", "--root-issuer", "--claims", claims]
