"""Secure container for detected ID tokens."""

from __future__ import annotations

import hmac
from types import TracebackType
from typing import Any, NoReturn


class IdToken:
    """Opaque wrapper around a detected OIDC ID token.

    The raw token is never exposed in repr/str and cannot be pickled or
    copied. :meth:`reveal` is the only way to read it.

    Example:
        >>> token = IdToken("eyJhbGciOi...", provider="github-actions")
        >>> print(token)  # "IdToken(***)"
        >>> token.reveal()  # "eyJhbGciOi..."
    """

    __slots__ = ("_value", "_provider")

    def __init__(self, value: str, *, provider: str = "unknown") -> None:
        self._value: str | None = value
        self._provider = provider

    def reveal(self) -> str:
        """Return the raw token text.

        Raises:
            ValueError: If the token has been wiped.
        """
        if self._value is None:
            raise ValueError("ID token has been wiped")
        return self._value

    @property
    def provider(self) -> str:
        """Name of the strategy that produced this token."""
        return self._provider

    @property
    def wiped(self) -> bool:
        return self._value is None

    def wipe(self) -> None:
        """Drop the reference to the token value.

        Python strings are immutable, so this is best-effort: the wrapper
        stops holding the value and the interpreter may reclaim it.
        """
        self._value = None

    def __enter__(self) -> IdToken:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.wipe()

    def __eq__(self, other: object) -> bool:
        """Constant-time comparison."""
        if isinstance(other, IdToken):
            other_value = other._value
        elif isinstance(other, str):
            other_value = other
        else:
            return NotImplemented
        if self._value is None or other_value is None:
            return False
        return hmac.compare_digest(
            self._value.encode("utf-8", "surrogatepass"),
            other_value.encode("utf-8", "surrogatepass"),
        )

    __hash__ = None  # type: ignore[assignment]

    def __bool__(self) -> bool:
        return bool(self._value)

    def __repr__(self) -> str:
        return f"IdToken(provider={self._provider!r})"

    def __str__(self) -> str:
        return "IdToken(***)"

    def __reduce__(self) -> NoReturn:
        raise TypeError("IdToken cannot be pickled")

    def __copy__(self) -> NoReturn:
        raise TypeError("IdToken cannot be copied")

    def __deepcopy__(self, memo: dict[int, Any]) -> NoReturn:
        raise TypeError("IdToken cannot be copied")
