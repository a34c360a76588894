"""Tests for access code format handling and issuance.

This module tests:
- Normalization of user input to canonical form
- Code generation alphabet
- Issuing generated and operator-chosen codes
"""

from datetime import datetime, timezone

import pytest

from src.auth_utils import AdminSession
from src.services.codes import (
    CODE_ALPHABET,
    generate_code,
    issue_access_code,
    normalize_code,
)
from src.services.errors import CodeIssueError


@pytest.fixture
def admin_session():
    now = datetime.now(timezone.utc)
    return AdminSession(subject="admin", issued_at=now, expires_at=now)


class TestNormalizeCode:
    """Test normalization of submitted codes."""

    @pytest.mark.parametrize("raw", [
        "ABCD-2345",
        "abcd-2345",
        "abcd2345",
        "  AbCd 2345 ",
        "ab.cd_23-45",
    ])
    def test_equivalent_inputs(self, raw):
        """Casing, whitespace and punctuation do not matter."""
        assert normalize_code(raw) == "ABCD-2345"

    @pytest.mark.parametrize("raw", [
        "",
        "ABC-2345",
        "ABCDE-23456",
        "----",
        "ÄBCD-2345",
    ])
    def test_wrong_length_is_rejected(self, raw):
        """Anything that is not eight letters or digits is malformed."""
        assert normalize_code(raw) is None

    @pytest.mark.parametrize("raw", [None, 12345678, b"ABCD2345", ["ABCD2345"]])
    def test_non_string_is_rejected(self, raw):
        assert normalize_code(raw) is None

    def test_existing_codes_with_ambiguous_characters_still_normalize(self):
        """Only generation avoids 0/O and 1/I; lookup accepts them."""
        assert normalize_code("o0i1-l1o0") == "O0I1-L1O0"


class TestGenerateCode:
    """Test random code generation."""

    def test_generated_codes_are_canonical(self):
        for _ in range(50):
            code = generate_code()
            assert normalize_code(code) == code
            assert code[4] == "-"

    def test_generated_codes_use_unambiguous_alphabet(self):
        seen = set()
        for _ in range(200):
            seen.update(generate_code().replace("-", ""))
        assert seen <= set(CODE_ALPHABET)
        for ambiguous in "01IO":
            assert ambiguous not in CODE_ALPHABET


class TestIssueAccessCode:
    """Test issuing codes on behalf of an operator."""

    def test_issue_generated_code(self, test_db, admin_session):
        code = issue_access_code(test_db, admin_session, name="Launch", max_uses=3)

        assert normalize_code(code.code) == code.code
        assert code.max_uses == 3
        assert code.used_count == 0
        assert code.is_active is True
        assert code.is_retired is False
        assert code.created_by == "admin"

    def test_issue_custom_code_is_normalized(self, test_db, admin_session):
        code = issue_access_code(
            test_db, admin_session, name="Custom", max_uses=0, code="team 2026"
        )
        assert code.code == "TEAM-2026"

    def test_issue_duplicate_custom_code(self, test_db, admin_session):
        issue_access_code(test_db, admin_session, name="First", max_uses=1, code="TEAM-2026")

        with pytest.raises(CodeIssueError, match="already exists"):
            issue_access_code(test_db, admin_session, name="Second", max_uses=1, code="team2026")

    def test_issue_malformed_custom_code(self, test_db, admin_session):
        with pytest.raises(CodeIssueError):
            issue_access_code(test_db, admin_session, name="Bad", max_uses=1, code="short")

    def test_issue_negative_quota(self, test_db, admin_session):
        with pytest.raises(CodeIssueError):
            issue_access_code(test_db, admin_session, name="Bad", max_uses=-1)

    def test_generation_retries_on_collision(self, test_db, admin_session, monkeypatch):
        """A generated code that is already taken is replaced by a fresh draw."""
        from src.services import codes

        issue_access_code(test_db, admin_session, name="Taken", max_uses=1, code="AAAA-AAAA")
        draws = iter(["AAAA-AAAA", "BBBB-BBBB"])
        monkeypatch.setattr(codes, "generate_code", lambda: next(draws))

        code = issue_access_code(test_db, admin_session, name="Fresh", max_uses=1)
        assert code.code == "BBBB-BBBB"

    def test_generation_gives_up(self, test_db, admin_session, monkeypatch):
        from src.services import codes

        issue_access_code(test_db, admin_session, name="Taken", max_uses=1, code="AAAA-AAAA")
        monkeypatch.setattr(codes, "generate_code", lambda: "AAAA-AAAA")

        with pytest.raises(CodeIssueError, match="unique"):
            issue_access_code(test_db, admin_session, name="Fresh", max_uses=1)
