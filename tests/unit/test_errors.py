"""Unit tests for netclock._errors — exception hierarchy.

Test Techniques Used:
    - Specification-based Testing: message format and attributes
    - Hierarchy Testing: every error derives from NetClockError
"""

from __future__ import annotations

import pytest

from netclock._errors import NetClockError, NoEventLoopError, ResolutionError


class TestResolutionError:
    """Technique: Specification-based Testing."""

    def test_message_with_reason(self) -> None:
        exc = ResolutionError("bad.example", "Name or service not known")

        assert exc.host == "bad.example"
        assert exc.reason == "Name or service not known"
        assert str(exc) == "Could not resolve 'bad.example': Name or service not known"

    def test_message_without_reason(self) -> None:
        assert str(ResolutionError("bad.example")) == "Could not resolve 'bad.example'"


class TestHierarchy:
    """Technique: Hierarchy Testing."""

    @pytest.mark.parametrize("cls", [ResolutionError, NoEventLoopError])
    def test_derives_from_base(self, cls: type[Exception]) -> None:
        assert issubclass(cls, NetClockError)

    def test_no_event_loop_is_runtime_error(self) -> None:
        """Callers catching RuntimeError from asyncio also catch this."""
        with pytest.raises(RuntimeError):
            raise NoEventLoopError("no loop")
