"""Tests for the Ok / Err result envelope."""

import pytest

from taskhub.core.result import Err, Ok, try_result


class TestOk:
    def test_accessors(self):
        ok = Ok(3)
        assert ok.is_ok() and not ok.is_err()
        assert ok.unwrap() == 3


class TestErr:
    def test_accessors(self):
        err = Err(ValueError("x"))
        assert err.is_err() and not err.is_ok()

    def test_unwrap_reraises_same_object(self):
        """The captured exception is raised as-is, not wrapped."""
        error = ValueError("boom")
        with pytest.raises(ValueError) as info:
            Err(error).unwrap()
        assert info.value is error


class TestTryResult:
    def test_captures_value(self):
        assert try_result(lambda: 42) == Ok(42)

    def test_captures_exception(self):
        result = try_result(lambda: 1 / 0)
        assert result.is_err()
        assert isinstance(result.error, ZeroDivisionError)
