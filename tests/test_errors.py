"""
tests/test_errors.py — Write-Path Error Mapping
===============================================
"""

from __future__ import annotations

import pytest

from agora.errors import ConflictError, ForumError, InternalError, NotFoundError, guard_write


class TestGuardWrite:
    def test_result_passes_through(self):
        @guard_write("add numbers")
        def add(a, b):
            return a + b

        assert add(2, 3) == 5
        assert add.__name__ == "add"

    @pytest.mark.parametrize("error", [NotFoundError("gone"), ConflictError("busy")])
    def test_forum_errors_unchanged(self, error):
        @guard_write("do thing")
        def fail():
            raise error

        with pytest.raises(type(error)) as info:
            fail()
        assert info.value is error

    def test_unexpected_error_wrapped(self, caplog):
        @guard_write("save discussion")
        def fail():
            raise KeyError("column")

        with pytest.raises(InternalError) as info:
            fail()

        assert info.value.message == "Failed to save discussion"
        assert info.value.status_code == 500
        assert isinstance(info.value.__cause__, KeyError)
        assert "Unexpected failure" in caplog.text


class TestForumErrorShape:
    @pytest.mark.parametrize(
        "cls, status, code",
        [
            (NotFoundError, 404, "not_found"),
            (ConflictError, 409, "conflict"),
            (InternalError, 500, "internal_error"),
        ],
    )
    def test_status_and_code(self, cls, status, code):
        error = cls("message")
        assert isinstance(error, ForumError)
        assert (error.status_code, error.code, error.message) == (status, code, "message")
