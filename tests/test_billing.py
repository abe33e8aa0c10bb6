from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from src.core.billing import QuotaLedger, QuotaReservation, next_quota_reset, tier_to_entitlements
from src.core.errors import ConfigurationError, NotConfiguredError

NOW = datetime(2026, 3, 10, tzinfo=timezone.utc)


class _Row:
    def __init__(self, plan_tier: str = "free", used: int = 0, reset_at: datetime | None = None) -> None:
        self.plan_tier = plan_tier
        self.api_lookups_used = used
        self.quota_reset_at = reset_at or NOW + timedelta(days=10)


class _FakeSession:
    def __init__(self) -> None:
        self.commits = 0

    async def __aenter__(self) -> _FakeSession:
        return self

    async def __aexit__(self, exc_type, exc, tb):  # noqa: ANN001
        return None

    async def commit(self) -> None:
        self.commits += 1


class _FakeShopRepository:
    """Mimics the conditional UPDATE statements: each check-and-write is one step."""

    def __init__(self, rows: dict[str, _Row]) -> None:
        self.rows = rows

    async def get_by_domain(self, shop_domain: str):  # noqa: ANN201
        await asyncio.sleep(0)
        row = self.rows.get(shop_domain)
        return SimpleNamespace(plan_tier=row.plan_tier) if row else None

    async def reset_quota_window_if_due(self, shop_domain: str, now: datetime, next_reset_at: datetime) -> bool:
        await asyncio.sleep(0)
        row = self.rows[shop_domain]
        if row.quota_reset_at < now:
            row.api_lookups_used = 0
            row.quota_reset_at = next_reset_at
            return True
        return False

    async def get_quota_state(self, shop_domain: str) -> tuple[int, datetime]:
        row = self.rows[shop_domain]
        return row.api_lookups_used, row.quota_reset_at

    async def reserve_quota(self, shop_domain: str, cost: int, limit: int):  # noqa: ANN201
        await asyncio.sleep(0)
        row = self.rows[shop_domain]
        if row.api_lookups_used + cost > limit:
            return None
        row.api_lookups_used += cost
        return row.api_lookups_used, row.quota_reset_at

    async def release_quota(self, shop_domain: str, cost: int, window_reset_at: datetime) -> bool:
        row = self.rows[shop_domain]
        if row.quota_reset_at != window_reset_at:
            return False
        row.api_lookups_used = max(0, row.api_lookups_used - cost)
        return True


def _ledger(rows: dict[str, _Row], clock=lambda: NOW) -> QuotaLedger:  # noqa: ANN001
    return QuotaLedger(
        session_factory=_FakeSession,
        repository_factory=lambda _session: _FakeShopRepository(rows),
        clock=clock,
    )


def test_tier_to_entitlements_known_and_unknown() -> None:
    assert tier_to_entitlements("PRO").quota_limit == 25000
    fallback = tier_to_entitlements("platinum")
    assert (fallback.tier, fallback.quota_limit) == ("free", 250)
    assert tier_to_entitlements(None).tier == "free"


def test_tier_to_entitlements_requires_free_tier(monkeypatch: pytest.MonkeyPatch) -> None:
    from src.core import billing

    monkeypatch.setattr(billing.settings, "plan_quotas_json", '{"pro": 10}')
    with pytest.raises(ConfigurationError):
        tier_to_entitlements("basic")


def test_next_quota_reset_is_thirty_days_out() -> None:
    assert next_quota_reset(NOW) == NOW + timedelta(days=30)


@pytest.mark.asyncio
async def test_last_unit_is_granted_then_denied() -> None:
    rows = {"demo.myshopify.com": _Row(used=249)}
    ledger = _ledger(rows)

    allowed = await ledger.check_and_reserve("demo.myshopify.com", 1)
    denied = await ledger.check_and_reserve("demo.myshopify.com", 1)

    assert allowed.allowed is True
    assert (allowed.used, allowed.limit) == (250, 250)
    assert denied.allowed is False
    assert (denied.used, denied.limit) == (250, 250)
    assert rows["demo.myshopify.com"].api_lookups_used == 250


@pytest.mark.asyncio
async def test_concurrent_reservations_never_overshoot() -> None:
    rows = {"demo.myshopify.com": _Row(used=240)}
    ledger = _ledger(rows)

    decisions = await asyncio.gather(*(ledger.check_and_reserve("demo.myshopify.com", 1) for _ in range(25)))

    assert sum(1 for decision in decisions if decision.allowed) == 10
    assert rows["demo.myshopify.com"].api_lookups_used == 250


@pytest.mark.asyncio
async def test_window_reset_happens_once_when_due() -> None:
    rows = {"demo.myshopify.com": _Row(used=250, reset_at=NOW - timedelta(seconds=1))}
    ledger = _ledger(rows)

    decisions = await asyncio.gather(*(ledger.check_and_reserve("demo.myshopify.com", 1) for _ in range(3)))

    assert all(decision.allowed for decision in decisions)
    assert rows["demo.myshopify.com"].api_lookups_used == 3
    assert rows["demo.myshopify.com"].quota_reset_at == NOW + timedelta(days=30)


@pytest.mark.asyncio
async def test_unknown_shop_is_not_configured() -> None:
    with pytest.raises(NotConfiguredError):
        await _ledger({}).check_and_reserve("ghost.myshopify.com", 1)


@pytest.mark.asyncio
async def test_negative_cost_rejected() -> None:
    with pytest.raises(ValueError):
        await _ledger({"demo.myshopify.com": _Row()}).check_and_reserve("demo.myshopify.com", -1)


@pytest.mark.asyncio
async def test_release_refunds_within_same_window_only() -> None:
    rows = {"demo.myshopify.com": _Row(used=0)}
    ledger = _ledger(rows)

    decision = await ledger.check_and_reserve("demo.myshopify.com", 5)
    assert rows["demo.myshopify.com"].api_lookups_used == 5

    assert await ledger.release(decision.reservation) is True
    assert rows["demo.myshopify.com"].api_lookups_used == 0

    stale = QuotaReservation(
        shop_domain="demo.myshopify.com",
        cost=3,
        window_reset_at=NOW - timedelta(days=30),
    )
    rows["demo.myshopify.com"].api_lookups_used = 2
    assert await ledger.release(stale) is False
    assert rows["demo.myshopify.com"].api_lookups_used == 2


@pytest.mark.asyncio
async def test_release_of_zero_cost_is_noop() -> None:
    ledger = _ledger({"demo.myshopify.com": _Row()})
    reservation = QuotaReservation("demo.myshopify.com", 0, NOW)
    assert await ledger.release(reservation) is False


@pytest.mark.asyncio
async def test_usage_reports_tier_and_window() -> None:
    reset_at = NOW + timedelta(days=3)
    ledger = _ledger({"demo.myshopify.com": _Row(plan_tier="plus", used=42, reset_at=reset_at)})

    usage = await ledger.usage("demo.myshopify.com")

    assert (usage.tier, usage.used, usage.limit, usage.reset_at) == ("plus", 42, 2500, reset_at)
