"""Tests for the SQLAlchemy repositories against SQLite."""
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from storefront import models
from storefront.database import Base, SessionLocal, engine, init_database
from storefront.domain import CheckoutSession, CheckoutStep, PaymentMethod, PaymentMethodType
from storefront.errors import ConflictError
from storefront.repositories.sql import sql_repositories


@pytest.fixture
def db():
    init_database()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def repos(db):
    return sql_repositories(db)


def _session(step, updated_at):
    return CheckoutSession(
        id=str(uuid.uuid4()),
        user_id="user-1",
        step=step,
        idempotency_key=uuid.uuid4().hex,
        created_at=updated_at,
        updated_at=updated_at,
    )


def _card(token, is_default=False):
    return PaymentMethod(
        id=str(uuid.uuid4()),
        user_id="user-1",
        last4="4242",
        brand="visa",
        exp_month=12,
        exp_year=2030,
        provider_token=token,
        is_default=is_default,
    )


class TestClaim:
    def test_only_one_claim_wins(self, repos):
        now = datetime.now(timezone.utc)
        session = repos.checkout_sessions.save(_session(CheckoutStep.review, now))
        stale_before = now - timedelta(minutes=2)

        first = repos.checkout_sessions.claim("user-1", session.id, now=now, stale_before=stale_before)
        second = repos.checkout_sessions.claim("user-1", session.id, now=now, stale_before=stale_before)

        assert first.step == CheckoutStep.processing
        assert second is None

    def test_stale_processing_can_be_claimed(self, repos):
        now = datetime.now(timezone.utc)
        session = repos.checkout_sessions.save(_session(CheckoutStep.processing, now - timedelta(minutes=10)))

        claimed = repos.checkout_sessions.claim(
            "user-1", session.id, now=now, stale_before=now - timedelta(minutes=2)
        )

        assert claimed.step == CheckoutStep.processing
        assert claimed.idempotency_key == session.idempotency_key

    def test_other_users_session_is_not_claimed(self, repos):
        now = datetime.now(timezone.utc)
        session = repos.checkout_sessions.save(_session(CheckoutStep.review, now))

        assert repos.checkout_sessions.claim("user-2", session.id, now=now, stale_before=now) is None

    @pytest.mark.parametrize("step", [CheckoutStep.address, CheckoutStep.payment, CheckoutStep.completed])
    def test_other_steps_are_not_claimed(self, repos, step):
        now = datetime.now(timezone.utc)
        session = repos.checkout_sessions.save(_session(step, now - timedelta(minutes=10)))

        assert repos.checkout_sessions.claim("user-1", session.id, now=now, stale_before=now) is None


class TestWriteConflicts:
    def test_duplicate_token_is_a_conflict(self, repos):
        repos.payment_methods.save(_card("pm_card_1"))

        with pytest.raises(ConflictError):
            repos.payment_methods.save(_card("pm_card_1"))

        # The session was rolled back and is still usable.
        saved = repos.payment_methods.save(_card("pm_card_2"))
        assert [m.id for m in repos.payment_methods.list_for_user("user-1")].count(saved.id) == 1

    def test_single_default_payment_method_per_user(self, db):
        for token in ("pm_card_1", "pm_card_2"):
            db.add(models.PaymentMethod(
                user_id="user-1",
                type=PaymentMethodType.card,
                last4="4242",
                provider_token=token,
                is_default=True,
            ))

        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()

    def test_saving_a_new_default_clears_the_old_one(self, repos):
        first = repos.payment_methods.save(_card("pm_card_1", is_default=True))
        second = repos.payment_methods.save(_card("pm_card_2", is_default=True))

        defaults = [m.id for m in repos.payment_methods.list_for_user("user-1") if m.is_default]
        assert defaults == [second.id]
        assert first.id != second.id
