"""Tests for CLI status helpers."""

import pytest

from coverport.core.progress import is_console_suppressed, pluralize, suppress_console_logs


class TestPluralize:
    @pytest.mark.parametrize(
        ("count", "expected"),
        [(0, "0 targets"), (1, "1 target"), (3, "3 targets")],
    )
    def test_regular_plural(self, count: int, expected: str) -> None:
        assert pluralize(count, "target") == expected

    def test_explicit_plural(self) -> None:
        assert pluralize(2, "directory", "directories") == "2 directories"


class TestConsoleSuppression:
    def test_suppression_is_scoped(self) -> None:
        assert not is_console_suppressed()

        with suppress_console_logs():
            assert is_console_suppressed()

        assert not is_console_suppressed()

    def test_suppression_cleared_on_error(self) -> None:
        with pytest.raises(RuntimeError), suppress_console_logs():
            raise RuntimeError("boom")

        assert not is_console_suppressed()

    def test_nested_suppression_lifts_at_outermost_exit(self) -> None:
        with suppress_console_logs():
            with suppress_console_logs():
                pass
            assert is_console_suppressed()

        assert not is_console_suppressed()
