"""
Integration tests for quota enforcement.

The enforcer commits allowed downloads and rolls back denials, so ids are
captured up front instead of read from ORM objects after a denial.
"""

from zoneinfo import ZoneInfo

import pytest

from app.domain.quota import UNLIMITED
from app.domain.subscription import ActivityType, BillingCycle, Principal, UserRole
from app.infrastructure.db.repositories.collaborator_repositories import ActivityRepository
from app.infrastructure.db.repositories.download_repository import DownloadRepository
from app.infrastructure.exceptions import NotFoundError
from app.infrastructure.services.quota_enforcer import (
    NO_SUBSCRIPTION,
    QuotaEnforcer,
    limit_reached_reason,
)
from app.infrastructure.services.subscription_ledger import SubscriptionLedger


UTC = ZoneInfo("UTC")


@pytest.fixture
async def subscriber(session, clock, make_user, make_asset, make_plan):
    """A user on a two-downloads-per-day plan, plus one asset."""
    user = await make_user()
    asset = await make_asset()
    plan = await make_plan(name="Starter", daily_download_limit=2)
    await SubscriptionLedger(session, now=clock).assign(user.id, plan.id)
    await session.commit()
    return {"user_id": user.id, "asset_id": asset.id, "plan_id": plan.id}


def _enforcer(session, clock, milestones=()):
    return QuotaEnforcer(session, now=clock, zone=UTC, milestones=list(milestones))


class TestCheckAndConsume:

    @pytest.mark.asyncio
    async def test_limit_of_two(self, session, clock, subscriber):
        enforcer = _enforcer(session, clock)
        principal = Principal(user_id=subscriber["user_id"])

        first = await enforcer.check_and_consume(principal, subscriber["asset_id"])
        second = await enforcer.check_and_consume(principal, subscriber["asset_id"])
        third = await enforcer.check_and_consume(principal, subscriber["asset_id"])

        assert (first.allowed, first.remaining) == (True, 1)
        assert (second.allowed, second.remaining) == (True, 0)
        assert (third.allowed, third.remaining) == (False, 0)
        assert third.reason == limit_reached_reason(2)
        assert first.download_id is not None

        downloads = DownloadRepository(session)
        assert await downloads.count_for_user(subscriber["user_id"]) == 2

    @pytest.mark.asyncio
    async def test_quota_resets_at_midnight(self, session, clock, subscriber):
        enforcer = _enforcer(session, clock)
        principal = Principal(user_id=subscriber["user_id"])
        for _ in range(2):
            await enforcer.check_and_consume(principal, subscriber["asset_id"])
        assert not (await enforcer.check_and_consume(principal, subscriber["asset_id"])).allowed

        clock.set(clock().replace(hour=23, minute=59))
        assert not (await enforcer.check_and_consume(principal, subscriber["asset_id"])).allowed

        clock.advance(minutes=1)
        decision = await enforcer.check_and_consume(principal, subscriber["asset_id"])
        assert decision.allowed
        assert decision.remaining == 1

    @pytest.mark.asyncio
    async def test_no_subscription(self, session, clock, make_user, make_asset):
        user = await make_user()
        asset = await make_asset()
        user_id, asset_id = user.id, asset.id

        decision = await _enforcer(session, clock).check_and_consume(Principal(user_id=user_id), asset_id)

        assert decision.allowed is False
        assert decision.remaining == 0
        assert decision.reason == NO_SUBSCRIPTION
        assert await DownloadRepository(session).count_for_user(user_id) == 0

    @pytest.mark.asyncio
    async def test_expired_subscription_denied(self, session, clock, make_user, make_asset, make_plan):
        user = await make_user()
        asset = await make_asset()
        plan = await make_plan(billing_cycle=BillingCycle.WEEKLY)
        user_id, asset_id = user.id, asset.id
        await SubscriptionLedger(session, now=clock).assign(user_id, plan.id)
        await session.commit()

        clock.advance(days=7)
        decision = await _enforcer(session, clock).check_and_consume(Principal(user_id=user_id), asset_id)

        assert decision.allowed is False
        assert decision.reason == NO_SUBSCRIPTION

    @pytest.mark.asyncio
    async def test_zero_limit_plan(self, session, clock, make_user, make_asset, make_plan):
        user = await make_user()
        asset = await make_asset()
        plan = await make_plan(daily_download_limit=0)
        user_id, asset_id = user.id, asset.id
        await SubscriptionLedger(session, now=clock).assign(user_id, plan.id)
        await session.commit()

        decision = await _enforcer(session, clock).check_and_consume(Principal(user_id=user_id), asset_id)

        assert decision.allowed is False
        assert decision.reason == limit_reached_reason(0)

    @pytest.mark.asyncio
    async def test_admin_is_unlimited_but_recorded(self, session, clock, make_user, make_asset):
        admin = await make_user(role=UserRole.ADMIN)
        asset = await make_asset()
        admin_id, asset_id = admin.id, asset.id
        enforcer = _enforcer(session, clock)
        principal = Principal(user_id=admin_id, role=UserRole.ADMIN)

        for _ in range(5):
            decision = await enforcer.check_and_consume(principal, asset_id)
            assert decision.allowed
            assert decision.remaining == UNLIMITED

        assert await DownloadRepository(session).count_for_user(admin_id) == 5

    @pytest.mark.asyncio
    async def test_inactive_asset(self, session, clock, subscriber, make_asset):
        retired = await make_asset(name="Retired", is_active=False)
        retired_id = retired.id

        with pytest.raises(NotFoundError):
            await _enforcer(session, clock).check_and_consume(
                Principal(user_id=subscriber["user_id"]), retired_id
            )
        assert await DownloadRepository(session).count_for_user(subscriber["user_id"]) == 0

    @pytest.mark.asyncio
    async def test_audit_context_recorded(self, session, clock, subscriber):
        from app.domain.quota import DownloadContext

        decision = await _enforcer(session, clock).check_and_consume(
            Principal(user_id=subscriber["user_id"]),
            subscriber["asset_id"],
            DownloadContext(ip_address="203.0.113.7", user_agent="pytest"),
        )

        download = await DownloadRepository(session).get_by_id(decision.download_id)
        assert download.ip_address == "203.0.113.7"
        assert download.user_agent == "pytest"
        assert download.downloaded_at == clock()

    @pytest.mark.asyncio
    async def test_milestone_logged_once(self, session, clock, subscriber):
        enforcer = _enforcer(session, clock, milestones=[2])
        principal = Principal(user_id=subscriber["user_id"])

        await enforcer.check_and_consume(principal, subscriber["asset_id"])
        await enforcer.check_and_consume(principal, subscriber["asset_id"])
        clock.advance(days=1)
        await enforcer.check_and_consume(principal, subscriber["asset_id"])

        activities = await ActivityRepository(session).get_recent(50)
        milestones = [a for a in activities if a.type == ActivityType.ASSET_MILESTONE.value]
        assert len(milestones) == 1
        assert milestones[0].asset_id == subscriber["asset_id"]
        assert milestones[0].event_data == {"downloads": 2}


class TestStatus:

    @pytest.mark.asyncio
    async def test_status_after_one_download(self, session, clock, subscriber):
        enforcer = _enforcer(session, clock)
        await enforcer.check_and_consume(Principal(user_id=subscriber["user_id"]), subscriber["asset_id"])

        status = await enforcer.status(subscriber["user_id"])

        assert status.has_active_subscription is True
        assert status.plan_name == "Starter"
        assert status.daily_limit == 2
        assert status.downloads_today == 1
        assert status.remaining_downloads == 1
        assert status.can_download is True

    @pytest.mark.asyncio
    async def test_status_without_subscription(self, session, clock, make_user):
        user = await make_user()

        status = await _enforcer(session, clock).status(user.id)

        assert status.has_active_subscription is False
        assert status.remaining_downloads == 0
        assert status.can_download is False

    @pytest.mark.asyncio
    async def test_privileged_status_is_unlimited(self, session, clock, make_user):
        admin = await make_user(role=UserRole.ADMIN)

        status = await _enforcer(session, clock).status(admin.id, privileged=True)

        assert status.remaining_downloads == UNLIMITED
        assert status.daily_limit == UNLIMITED
        assert status.can_download is True


class TestHistory:

    @pytest.mark.asyncio
    async def test_history_newest_first(self, session, clock, subscriber):
        enforcer = _enforcer(session, clock)
        principal = Principal(user_id=subscriber["user_id"])
        first = await enforcer.check_and_consume(principal, subscriber["asset_id"])
        clock.advance(minutes=1)
        second = await enforcer.check_and_consume(principal, subscriber["asset_id"])

        items, pagination = await enforcer.history(subscriber["user_id"], page=1, limit=10)

        assert [d.id for d in items] == [second.download_id, first.download_id]
        assert pagination.total == 2
