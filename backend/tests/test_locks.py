"""Tests for the recalculation advisory locks."""

from datetime import date

from castsales.core.locks import (
    acquire_lock,
    recalculation_lock,
    recalculation_lock_key,
    release_lock,
)
from castsales.models import RecalculationLock


class TestLocks:

    def test_key_format(self):
        assert recalculation_lock_key(3, date(2026, 10, 1)) == "recalculate:3:2026-10-01"

    def test_second_acquire_fails_until_released(self, db_session):
        assert acquire_lock(db_session, "recalculate:1:2026-10-01", owner="worker-1") is True
        assert acquire_lock(db_session, "recalculate:1:2026-10-01", owner="worker-2") is False

        lock = db_session.query(RecalculationLock).one()
        assert lock.locked_by == "worker-1"

        assert release_lock(db_session, "recalculate:1:2026-10-01", owner="worker-1") is True
        assert acquire_lock(db_session, "recalculate:1:2026-10-01", owner="worker-2") is True

    def test_keys_are_independent(self, db_session):
        assert acquire_lock(db_session, "recalculate:1:2026-10-01") is True
        assert acquire_lock(db_session, "recalculate:1:2026-10-02") is True
        assert acquire_lock(db_session, "recalculate:2:2026-10-01") is True

    def test_expired_lock_is_taken_over(self, db_session):
        assert acquire_lock(db_session, "recalculate:1:2026-10-01", ttl_seconds=-60, owner="crashed") is True
        assert acquire_lock(db_session, "recalculate:1:2026-10-01", owner="worker-2") is True
        assert db_session.query(RecalculationLock).one().locked_by == "worker-2"

    def test_release_unknown_key_is_noop(self, db_session):
        assert release_lock(db_session, "recalculate:9:2026-10-01") is False
        assert db_session.query(RecalculationLock).count() == 0

    def test_stale_holder_cannot_release_new_holders_lock(self, db_session):
        assert acquire_lock(db_session, "recalculate:1:2026-10-01", ttl_seconds=-60, owner="slow") is True
        assert acquire_lock(db_session, "recalculate:1:2026-10-01", owner="worker-2") is True

        assert release_lock(db_session, "recalculate:1:2026-10-01", owner="slow") is False
        assert db_session.query(RecalculationLock).one().locked_by == "worker-2"

    def test_release_by_other_owner_keeps_lock(self, db_session):
        assert acquire_lock(db_session, "recalculate:1:2026-10-01", owner="worker-1") is True
        assert release_lock(db_session, "recalculate:1:2026-10-01", owner="worker-2") is False
        assert db_session.query(RecalculationLock).count() == 1

    def test_context_manager(self, db_session):
        with recalculation_lock(db_session, "recalculate:scheduled") as acquired:
            assert acquired is True
            with recalculation_lock(db_session, "recalculate:scheduled") as nested:
                assert nested is False
            # The failed attempt must not release the holder's lock
            assert db_session.query(RecalculationLock).count() == 1
        assert db_session.query(RecalculationLock).count() == 0
