"""Tests for Result and ErrorKind."""

from mindloop.result import ErrorKind, Result


class TestResult:
    def test_ok(self):
        result = Result.ok(3)
        assert result.is_ok
        assert result.unwrap_or(0) == 3
        assert result.describe() == "ok"

    def test_fail(self):
        result = Result.fail(ErrorKind.TIMEOUT, "after 30s")
        assert not result.is_ok
        assert result.value is None
        assert result.unwrap_or(0) == 0
        assert result.describe() == "timeout: after 30s"

    def test_fail_without_detail(self):
        assert Result.fail(ErrorKind.PARSE).describe() == "parse"

    def test_ok_none_is_still_ok(self):
        assert Result.ok(None).is_ok
