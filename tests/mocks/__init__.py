"""Mock implementations for transport collaborators.

These stand in for subprocess execution and record HTTP traffic so tests
never touch real CI tooling or cloud endpoints.
"""

from tests.mocks.transport_mocks import (
    FakeCommandRunner,
    RecordedRequest,
    record,
)

__all__ = [
    "FakeCommandRunner",
    "RecordedRequest",
    "record",
]
