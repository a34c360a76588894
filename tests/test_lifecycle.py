"""Tests for retirement of short-term access codes."""

from datetime import timedelta

from src.clock import utcnow
from src.database import crud
from src.services.lifecycle import LifecycleSweeper


class TestSweep:
    """Test bulk retirement of spent codes."""

    def test_sweep_retires_expired_short_term_codes(self, test_db, expired_code, quota_code):
        retired = LifecycleSweeper(test_db).sweep_expired()

        assert retired == 1
        assert crud.get_access_code_by_id(test_db, expired_code.id).is_retired is True
        assert crud.get_access_code_by_id(test_db, quota_code.id).is_retired is False

    def test_sweep_retires_exhausted_short_term_codes(self, test_db, make_code):
        code = make_code("FULL-0000", name="Full", max_uses=2)
        # Exhaust directly at the storage layer, bypassing inline retirement.
        for _ in range(2):
            crud.consume_access_code(test_db, "FULL-0000", utcnow())
        test_db.commit()

        assert LifecycleSweeper(test_db).sweep_expired() == 1
        assert crud.get_access_code_by_id(test_db, code.id).is_retired is True

    def test_sweep_skips_long_term_codes(self, test_db, make_code):
        code = make_code(
            "LONG-EXP0",
            name="Long expired",
            max_uses=0,
            expires_at=utcnow() - timedelta(days=1),
            is_long_term=True
        )

        assert LifecycleSweeper(test_db).sweep_expired() == 0
        assert crud.get_access_code_by_id(test_db, code.id).is_retired is False

    def test_sweep_is_idempotent(self, test_db, expired_code):
        sweeper = LifecycleSweeper(test_db)
        assert sweeper.sweep_expired() == 1
        assert sweeper.sweep_expired() == 0

    def test_sweep_with_explicit_time(self, test_db, quota_code):
        """A code is swept once the clock passes its expiry."""
        sweeper = LifecycleSweeper(test_db)
        assert sweeper.sweep_expired(now=utcnow()) == 0
        assert sweeper.sweep_expired(now=utcnow() + timedelta(days=31)) == 1

    def test_sweep_keeps_audit_rows(self, test_db, expired_code):
        from src.services.audit import AuditLogger
        from src.services.redemption import RedemptionCoordinator

        RedemptionCoordinator(test_db).redeem("EXPR-D000", "template-1", None)
        LifecycleSweeper(test_db).sweep_expired()

        records = AuditLogger(test_db).query()
        assert len(records) == 1
        assert records[0].code_display == "EXPR-D000"


class TestOperatorEdits:
    """Test that operator edits re-evaluate retirement."""

    def test_raising_quota_reinstates_retired_code(self, test_db, single_use_code):
        from src.services.redemption import RedemptionCoordinator

        RedemptionCoordinator(test_db).redeem("SNGL-USE1", "template-1", None)
        assert crud.get_access_code_by_id(test_db, single_use_code.id).is_retired is True

        updated = crud.update_access_code(test_db, single_use_code.id, max_uses=3)

        assert updated.is_retired is False
        assert updated.retired_at is None
        assert RedemptionCoordinator(test_db).redeem("SNGL-USE1", "template-1", None).accepted

    def test_expiring_code_retires_it(self, test_db, quota_code):
        updated = crud.update_access_code(
            test_db, quota_code.id, expires_at=utcnow() - timedelta(minutes=1)
        )
        assert updated.is_retired is True

    def test_marking_long_term_reinstates(self, test_db, expired_code):
        LifecycleSweeper(test_db).sweep_expired()

        updated = crud.update_access_code(test_db, expired_code.id, is_long_term=True)
        assert updated.is_retired is False

    def test_inline_retirement_skips_long_term(self, test_db, long_term_code):
        sweeper = LifecycleSweeper(test_db)
        long_term_code.used_count = 1
        test_db.commit()

        assert sweeper.retire_if_exhausted(long_term_code) is False
