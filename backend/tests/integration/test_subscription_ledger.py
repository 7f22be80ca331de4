"""
Integration tests for the subscription ledger against a real database.

Covers supersession, idempotent cancellation, monotonic renewal and the
one-active-per-user index.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from app.domain.subscription import ActivityType, BillingCycle, UserRole
from app.infrastructure.db.models import UserSubscription
from app.infrastructure.db.repositories.collaborator_repositories import ActivityRepository
from app.infrastructure.exceptions import ConflictError, NotFoundError
from app.infrastructure.services.subscription_ledger import (
    EXTERNAL_ID,
    ONE_ACTIVE,
    SubscriptionLedger,
    violated_constraint,
)


async def _activity_types(session) -> list:
    return [activity.type for activity in await ActivityRepository(session).get_recent(50)]


class TestAssign:

    @pytest.mark.asyncio
    async def test_new_subscription_supersedes_previous(self, session, clock, make_user, make_plan):
        user = await make_user()
        basic = await make_plan(name="Basic")
        pro = await make_plan(name="Pro")
        ledger = SubscriptionLedger(session, now=clock)

        first = await ledger.assign(user.id, basic.id)
        await session.commit()
        clock.advance(minutes=5)
        second = await ledger.assign(user.id, pro.id)
        await session.commit()

        history = await ledger.history(user.id)
        assert [s.id for s in history] == [second.id, first.id]
        assert [s.id for s in history if s.is_active] == [second.id]

        active = await ledger.get_active(user.id)
        assert active.id == second.id
        assert active.plan.name == "Pro"

    @pytest.mark.asyncio
    async def test_end_date_follows_billing_cycle(self, session, clock, make_user, make_plan):
        user = await make_user()
        plan = await make_plan(billing_cycle=BillingCycle.MONTHLY)
        ledger = SubscriptionLedger(session, now=clock)

        subscription = await ledger.assign(user.id, plan.id, start_date=datetime(2026, 1, 31, 9, 0))

        assert subscription.start_date == datetime(2026, 1, 31, 9, 0)
        assert subscription.end_date == datetime(2026, 2, 28, 9, 0)
        assert subscription.is_active

    @pytest.mark.asyncio
    async def test_offset_start_normalised_to_utc(self, session, clock, make_user, make_plan):
        user = await make_user()
        plan = await make_plan(billing_cycle=BillingCycle.MONTHLY)
        ledger = SubscriptionLedger(session, now=clock)
        start = datetime(2026, 3, 10, 1, 0, tzinfo=timezone(timedelta(hours=2)))

        subscription = await ledger.assign(user.id, plan.id, start_date=start)
        await session.commit()

        assert subscription.start_date == datetime(2026, 3, 9, 23, 0)
        assert subscription.end_date == datetime(2026, 4, 9, 23, 0)
        assert (await ledger.get_active(user.id)).id == subscription.id

    @pytest.mark.asyncio
    async def test_defaults_start_to_now(self, session, clock, make_user, make_plan):
        user = await make_user()
        plan = await make_plan(billing_cycle=BillingCycle.WEEKLY)
        ledger = SubscriptionLedger(session, now=clock)

        subscription = await ledger.assign(user.id, plan.id)

        assert subscription.start_date == clock()
        assert subscription.end_date == clock() + timedelta(days=7)
        assert subscription.created_at == clock()

    @pytest.mark.asyncio
    async def test_inactive_plan_rejected(self, session, clock, make_user, make_plan):
        user = await make_user()
        plan = await make_plan(is_active=False)

        with pytest.raises(NotFoundError):
            await SubscriptionLedger(session, now=clock).assign(user.id, plan.id)

    @pytest.mark.asyncio
    async def test_unknown_plan_rejected(self, session, clock, make_user):
        user = await make_user()

        with pytest.raises(NotFoundError):
            await SubscriptionLedger(session, now=clock).assign(user.id, 999)

    @pytest.mark.asyncio
    async def test_inactive_user_rejected(self, session, clock, make_user, make_plan):
        user = await make_user(is_active=False)
        plan = await make_plan()

        with pytest.raises(NotFoundError):
            await SubscriptionLedger(session, now=clock).assign(user.id, plan.id)

    @pytest.mark.asyncio
    async def test_expired_subscription_does_not_block(self, session, clock, make_user, make_plan):
        user = await make_user()
        plan = await make_plan(billing_cycle=BillingCycle.WEEKLY)
        ledger = SubscriptionLedger(session, now=clock)

        await ledger.assign(user.id, plan.id)
        await session.commit()
        clock.advance(days=10)
        assert await ledger.get_active(user.id) is None

        renewed = await ledger.assign(user.id, plan.id)
        await session.commit()

        active = await ledger.get_active(user.id)
        assert active.id == renewed.id

    @pytest.mark.asyncio
    async def test_assignment_is_logged(self, session, clock, make_user, make_plan):
        user = await make_user()
        plan = await make_plan()

        await SubscriptionLedger(session, now=clock).assign(user.id, plan.id)
        await session.commit()

        assert ActivityType.USER_SUBSCRIPTION.value in await _activity_types(session)


class TestOneActiveIndex:

    @pytest.mark.asyncio
    async def test_second_flagged_row_rejected_by_storage(self, session, clock, make_user, make_plan):
        user = await make_user()
        plan = await make_plan()
        user_id, plan_id = user.id, plan.id
        await SubscriptionLedger(session, now=clock).assign(user_id, plan_id)
        await session.commit()

        session.add(UserSubscription(
            user_id=user_id,
            plan_id=plan_id,
            start_date=clock(),
            end_date=clock() + timedelta(days=30),
            is_active=True,
        ))
        with pytest.raises(IntegrityError) as excinfo:
            await session.flush()

        assert violated_constraint(excinfo.value) == ONE_ACTIVE
        await session.rollback()

    @pytest.mark.asyncio
    async def test_inactive_rows_are_unrestricted(self, session, clock, make_user, make_plan):
        user = await make_user()
        plan = await make_plan()
        for _ in range(3):
            session.add(UserSubscription(
                user_id=user.id,
                plan_id=plan.id,
                start_date=clock(),
                end_date=clock() + timedelta(days=30),
                is_active=False,
            ))
        await session.commit()

        assert len(await SubscriptionLedger(session, now=clock).history(user.id)) == 3


class TestConcurrentAssignment:
    """A competing writer commits its row after this transaction has checked for it."""

    @pytest.mark.asyncio
    async def test_lost_race_retried_once(self, session, clock, make_user, make_plan):
        user = await make_user()
        basic = await make_plan(name="Basic")
        pro = await make_plan(name="Pro")
        user_id, pro_id = user.id, pro.id
        ledger = SubscriptionLedger(session, now=clock)
        first = await ledger.assign(user_id, basic.id)
        await session.commit()
        first_id = first.id

        real_deactivate = ledger._repo.deactivate_all_for_user
        calls = []

        async def misses_competing_row_once(uid, now):
            calls.append(uid)
            if len(calls) == 1:
                return 0
            return await real_deactivate(uid, now)

        with patch.object(ledger._repo, "deactivate_all_for_user", new=misses_competing_row_once):
            second = await ledger.assign(user_id, pro_id)
        await session.commit()

        assert calls == [user_id, user_id]
        history = await ledger.history(user_id)
        assert [s.id for s in history if s.is_active] == [second.id]
        assert first_id in [s.id for s in history]

    @pytest.mark.asyncio
    async def test_second_lost_race_is_conflict(self, session, clock, make_user, make_plan):
        user = await make_user()
        basic = await make_plan(name="Basic")
        pro = await make_plan(name="Pro")
        user_id, pro_id = user.id, pro.id
        ledger = SubscriptionLedger(session, now=clock)
        first = await ledger.assign(user_id, basic.id)
        await session.commit()
        first_id = first.id

        deactivate = AsyncMock(return_value=0)
        with patch.object(ledger._repo, "deactivate_all_for_user", new=deactivate):
            with pytest.raises(ConflictError) as excinfo:
                await ledger.assign(user_id, pro_id)
        await session.rollback()

        assert excinfo.value.constraint == ONE_ACTIVE
        assert deactivate.await_count == 2
        assert (await ledger.get_active(user_id)).id == first_id

    @pytest.mark.asyncio
    async def test_duplicate_external_id_is_not_retried(self, session, clock, make_user, make_plan):
        first_user = await make_user()
        second_user = await make_user()
        plan = await make_plan()
        second_user_id = second_user.id
        ledger = SubscriptionLedger(session, now=clock)
        start, end = clock(), clock() + timedelta(days=30)
        await ledger.record_provider_subscription(first_user.id, plan, start, end, "sub_shared")
        await session.commit()

        # Lookup ran before the other writer committed
        with patch.object(ledger._repo, "get_by_external_id", new=AsyncMock(return_value=None)):
            with pytest.raises(ConflictError) as excinfo:
                await ledger.record_provider_subscription(second_user_id, plan, start, end, "sub_shared")
        await session.rollback()

        assert excinfo.value.constraint == EXTERNAL_ID
        assert await ledger.history(second_user_id) == []


class TestCancel:

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self, session, clock, make_user, make_plan):
        user = await make_user()
        plan = await make_plan()
        ledger = SubscriptionLedger(session, now=clock)
        subscription = await ledger.assign(user.id, plan.id)
        await session.commit()

        first = await ledger.cancel(subscription.id)
        second = await ledger.cancel(subscription.id)
        await session.commit()

        assert first.is_active is False
        assert second.is_active is False
        assert await ledger.get_active(user.id) is None

        types = await _activity_types(session)
        assert types.count(ActivityType.USER_SUBSCRIPTION_CANCELLED.value) == 1

    @pytest.mark.asyncio
    async def test_cancel_unknown(self, session, clock):
        with pytest.raises(NotFoundError):
            await SubscriptionLedger(session, now=clock).cancel(12345)


class TestRenew:

    @pytest.mark.asyncio
    async def test_renew_extends(self, session, clock, make_user, make_plan):
        user = await make_user()
        plan = await make_plan()
        ledger = SubscriptionLedger(session, now=clock)
        subscription = await ledger.assign(user.id, plan.id)
        new_end = subscription.end_date + timedelta(days=30)

        assert await ledger.renew(subscription.id, new_end) is True
        await session.commit()

        assert (await ledger.get(subscription.id)).end_date == new_end

    @pytest.mark.asyncio
    async def test_renew_never_shortens(self, session, clock, make_user, make_plan):
        user = await make_user()
        plan = await make_plan()
        ledger = SubscriptionLedger(session, now=clock)
        subscription = await ledger.assign(user.id, plan.id)
        original_end = subscription.end_date

        assert await ledger.renew(subscription.id, original_end - timedelta(days=1)) is False
        assert await ledger.renew(subscription.id, original_end) is False
        await session.commit()

        assert (await ledger.get(subscription.id)).end_date == original_end

    @pytest.mark.asyncio
    async def test_renew_keeps_plan(self, session, clock, make_user, make_plan):
        user = await make_user()
        plan = await make_plan()
        ledger = SubscriptionLedger(session, now=clock)
        subscription = await ledger.assign(user.id, plan.id)

        await ledger.renew(subscription.id, subscription.end_date + timedelta(days=1))

        assert (await ledger.get(subscription.id)).plan_id == plan.id


class TestProviderSubscriptions:

    @pytest.mark.asyncio
    async def test_record_is_idempotent_on_external_id(self, session, clock, make_user, make_plan):
        user = await make_user()
        plan = await make_plan()
        ledger = SubscriptionLedger(session, now=clock)
        end = clock() + timedelta(days=30)

        first, created = await ledger.record_provider_subscription(user.id, plan, clock(), end, "sub_abc")
        again, created_again = await ledger.record_provider_subscription(user.id, plan, clock(), end, "sub_abc")
        await session.commit()

        assert created is True
        assert created_again is False
        assert again.id == first.id
        assert len(await ledger.history(user.id)) == 1

    @pytest.mark.asyncio
    async def test_deactivate_by_external_id(self, session, clock, make_user, make_plan):
        user = await make_user()
        plan = await make_plan()
        ledger = SubscriptionLedger(session, now=clock)
        await ledger.record_provider_subscription(
            user.id, plan, clock(), clock() + timedelta(days=30), "sub_gone"
        )

        assert await ledger.deactivate_by_external_id("sub_gone") is True
        assert await ledger.deactivate_by_external_id("sub_gone") is False
        assert await ledger.deactivate_by_external_id("sub_unknown") is False


class TestUserDeletionGuard:

    @pytest.mark.asyncio
    async def test_active_subscription_blocks_deletion(self, session, clock, make_user, make_plan):
        user = await make_user()
        plan = await make_plan(billing_cycle=BillingCycle.WEEKLY)
        ledger = SubscriptionLedger(session, now=clock)
        await ledger.assign(user.id, plan.id)

        with pytest.raises(ConflictError):
            await ledger.ensure_user_deletable(user.id)

        clock.advance(days=8)
        await ledger.ensure_user_deletable(user.id)

    @pytest.mark.asyncio
    async def test_admins_follow_same_rule(self, session, clock, make_user, make_plan):
        admin = await make_user(role=UserRole.ADMIN)
        plan = await make_plan()
        await SubscriptionLedger(session, now=clock).assign(admin.id, plan.id)

        with pytest.raises(ConflictError):
            await SubscriptionLedger(session, now=clock).ensure_user_deletable(admin.id)


class TestViolatedConstraint:

    def _error(self, message: str) -> IntegrityError:
        return IntegrityError("INSERT INTO user_subscriptions ...", {}, Exception(message))

    def test_postgres_index_names(self):
        assert violated_constraint(self._error(
            'duplicate key value violates unique constraint "uq_user_subscriptions_one_active"'
        )) == ONE_ACTIVE
        assert violated_constraint(self._error(
            'duplicate key value violates unique constraint '
            '"uq_user_subscriptions_external_subscription_id"'
        )) == EXTERNAL_ID

    def test_sqlite_column_names(self):
        assert violated_constraint(self._error(
            "UNIQUE constraint failed: user_subscriptions.external_subscription_id"
        )) == EXTERNAL_ID

    def test_unrelated(self):
        assert violated_constraint(self._error("FOREIGN KEY constraint failed")) is None
