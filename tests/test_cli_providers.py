"""Tests for the CLI-backed strategies (BuildKite, CircleCI)."""

from __future__ import annotations

import sys

import pytest

from ambient_id import BuildKite, CircleCI, ExecutionError
from ambient_id.providers import _CommandStrategy
from ambient_id.transport import CommandOutput, CommandRunner
from tests.mocks import FakeCommandRunner


# =============================================================================
# BuildKite
# =============================================================================


class TestBuildKite:
    """Tests for BuildKite strategy."""

    async def test_not_detected(self, make_state):
        assert BuildKite.probe(make_state({})) is None

    async def test_detected(self, make_state):
        assert BuildKite.probe(make_state({"BUILDKITE": "true"})) is not None

    @pytest.mark.parametrize("value", ["", "false", "TRUE", "1", "yes"])
    async def test_not_detected_wrong_value(self, make_state, value):
        assert BuildKite.probe(make_state({"BUILDKITE": value})) is None

    async def test_ok(self, make_state):
        runner = FakeCommandRunner(output=CommandOutput(0, b"  eyJ.bk.token \n"))
        detector = BuildKite.probe(make_state({"BUILDKITE": "true"}, runner=runner))

        token = await detector.detect("sigstore")

        assert token.reveal() == "eyJ.bk.token"
        assert runner.calls == [
            ("buildkite-agent", "oidc", "request-token", "--audience", "sigstore"),
        ]

    async def test_nonzero_exit(self, make_state):
        runner = FakeCommandRunner(output=CommandOutput(1, b"", b"not authorized\n"))
        detector = BuildKite.probe(make_state({"BUILDKITE": "true"}, runner=runner))

        with pytest.raises(ExecutionError) as exc_info:
            await detector.detect("sigstore")

        error = exc_info.value
        assert error.returncode == 1
        assert error.signal is None
        assert error.stderr == "not authorized"
        assert "exited with code 1" in str(error)
        assert error.provider == "buildkite"

    async def test_killed_by_signal(self, make_state):
        runner = FakeCommandRunner(output=CommandOutput(-9))
        detector = BuildKite.probe(make_state({"BUILDKITE": "true"}, runner=runner))

        with pytest.raises(ExecutionError) as exc_info:
            await detector.detect("sigstore")

        assert exc_info.value.signal == 9
        assert exc_info.value.returncode is None
        assert "terminated by signal 9" in str(exc_info.value)

    async def test_agent_missing(self, make_state):
        runner = FakeCommandRunner(error=FileNotFoundError("buildkite-agent"))
        detector = BuildKite.probe(make_state({"BUILDKITE": "true"}, runner=runner))

        with pytest.raises(ExecutionError) as exc_info:
            await detector.detect("sigstore")

        assert isinstance(exc_info.value.__cause__, FileNotFoundError)
        assert "could not be executed" in str(exc_info.value)
        assert exc_info.value.reason == "buildkite-agent"
        assert exc_info.value.stderr == ""
        assert exc_info.value.returncode is None


# =============================================================================
# CircleCI
# =============================================================================


class TestCircleCI:
    """Tests for CircleCI strategy."""

    async def test_not_detected(self, make_state):
        assert CircleCI.probe(make_state({})) is None

    async def test_detected(self, make_state):
        assert CircleCI.probe(make_state({"CIRCLECI": "true"})) is not None

    @pytest.mark.parametrize("value", ["", "false", "TRUE", "1", "yes"])
    async def test_not_detected_wrong_value(self, make_state, value):
        assert CircleCI.probe(make_state({"CIRCLECI": value})) is None

    async def test_ok(self, make_state):
        runner = FakeCommandRunner(output=CommandOutput(0, b"eyJ.circle.token\n"))
        detector = CircleCI.probe(make_state({"CIRCLECI": "true"}, runner=runner))

        token = await detector.detect("sigstore")

        assert token.reveal() == "eyJ.circle.token"
        assert runner.calls == [
            ("circleci", "run", "oidc", "get", "--root-issuer", "--claims", '{"aud":"sigstore"}'),
        ]

    async def test_claims_escaping(self, make_state, runner):
        detector = CircleCI.probe(make_state({"CIRCLECI": "true"}, runner=runner))

        await detector.detect('we"ird ü')

        assert runner.calls[0][-1] == '{"aud":"we\\"ird ü"}'

    async def test_nonzero_exit(self, make_state):
        runner = FakeCommandRunner(output=CommandOutput(2, b"", b"oidc disabled"))
        detector = CircleCI.probe(make_state({"CIRCLECI": "true"}, runner=runner))

        with pytest.raises(ExecutionError) as exc_info:
            await detector.detect("sigstore")

        assert exc_info.value.returncode == 2
        assert exc_info.value.command == "circleci"
        assert exc_info.value.stderr == "oidc disabled"


class TestCommandStrategy:
    """Contract for CLI-backed strategies."""

    def test_arguments_required(self, runner):
        class NoArguments(_CommandStrategy):
            name = "no-arguments"
            display_name = "No Arguments"
            program = "true"

            @classmethod
            def probe(cls, state):
                return cls(state.runner)

        with pytest.raises(TypeError):
            NoArguments(runner)


# =============================================================================
# CommandRunner
# =============================================================================


class TestCommandRunner:
    """Tests for the real asyncio subprocess runner."""

    async def test_captures_stdout(self):
        output = await CommandRunner().run(sys.executable, "-c", "print('hello')")

        assert output.success
        assert output.stdout_text() == "hello"

    async def test_captures_failure(self):
        output = await CommandRunner().run(
            sys.executable,
            "-c",
            "import sys; sys.stderr.write('boom'); sys.exit(3)",
        )

        assert not output.success
        assert output.returncode == 3
        assert output.signal is None
        assert output.stderr_text() == "boom"

    async def test_missing_program(self):
        with pytest.raises(OSError):
            await CommandRunner().run("definitely-not-a-real-program-ambient-id")
