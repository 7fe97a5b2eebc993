"""Tests for the ambient-id command line."""

from __future__ import annotations

from typer.testing import CliRunner

from ambient_id.cli import EXIT_ERROR, EXIT_NOT_FOUND, app

cli = CliRunner()

# Unset every provider signal so the host running the tests cannot leak in.
CLEAN_ENV = {
    "GITHUB_ACTIONS": None,
    "GITLAB_CI": None,
    "BUILDKITE": None,
    "CIRCLECI": None,
    "GOOGLE_SERVICE_ACCOUNT_NAME": None,
    "AMBIENT_ID_REQUEST_TIMEOUT": None,
    "AMBIENT_ID_RETRY_ATTEMPTS": None,
}


def invoke(args, **env):
    return cli.invoke(app, args, env={**CLEAN_ENV, **env})


class TestDetectCommand:
    """`ambient-id detect`."""

    def test_prints_token(self):
        result = invoke(["detect", "bupkis"], GITLAB_CI="true", BUPKIS_ID_TOKEN="sometoken")

        assert result.exit_code == 0
        assert result.stdout.strip() == "sometoken"

    def test_detection_error(self):
        result = invoke(["detect", "bupkis"], GITLAB_CI="true")

        assert result.exit_code == EXIT_ERROR
        assert "GitLab CI detection error" in result.output
        assert "BUPKIS_ID_TOKEN" in result.output

    def test_not_detected(self, monkeypatch):
        async def nothing(audience):
            return None

        monkeypatch.setattr("ambient_id.cli.detect", nothing)

        result = invoke(["detect", "sigstore"])

        assert result.exit_code == EXIT_NOT_FOUND
        assert "No ambient OIDC credentials detected" in result.output

    def test_invalid_configuration(self):
        result = invoke(["detect", "sigstore"], AMBIENT_ID_REQUEST_TIMEOUT="soon")

        assert result.exit_code == EXIT_ERROR
        assert "AMBIENT_ID_REQUEST_TIMEOUT" in result.output

    def test_missing_audience(self):
        result = invoke(["detect"])

        assert result.exit_code != 0


class TestProvidersCommand:
    """`ambient-id providers`."""

    def test_lists_in_order(self):
        result = invoke(["providers"], CIRCLECI="true")

        assert result.exit_code == 0
        lines = result.stdout.strip().splitlines()
        assert [line.split(" ", 1)[0] for line in lines] == ["1.", "2.", "3.", "4.", "5."]
        assert lines[0].startswith("1. GitHub Actions (github-actions): not detected")
        assert lines[3] == "4. CircleCI (circleci): detected"
        assert lines[4].startswith("5. GCP (gcp): ")

    def test_invalid_configuration(self):
        result = invoke(["providers"], AMBIENT_ID_RETRY_ATTEMPTS="many")

        assert result.exit_code == EXIT_ERROR
