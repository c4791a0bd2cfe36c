#!/usr/bin/env python3
"""
Tier Gate Tests

Effective tier (trial elevation and lapse), access decisions, the upgrade
prompt and the tier_required decorator.
"""

import asyncio
import pytest
import sys
import os
from datetime import timedelta

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from entitlement.lifecycle import LifecycleEngine
from entitlement.models import PlanType, SubscriptionStatus, Subscription
from entitlement.tier_gate import TierGate, FeatureLockedError, tier_required
from tests.conftest import START_TIME


@pytest.fixture
def lifecycle(store):
    return LifecycleEngine(store)


@pytest.fixture
def gate(store, lifecycle):
    return TierGate(store, lifecycle)


def seed(store, plan, status):
    sub = Subscription.default()
    sub.plan_type = plan
    sub.subscription_status = status
    store.save(sub)
    return sub


# ============================================================================
# EFFECTIVE TIER
# ============================================================================

class TestEffectiveTier:

    def test_free_inactive(self, gate):
        assert gate.effective_tier() == PlanType.FREE

    def test_paid_plan(self, gate, store):
        seed(store, PlanType.PREMIUM, SubscriptionStatus.ACTIVE)
        assert gate.effective_tier() == PlanType.PREMIUM

    def test_trial_elevates_free_to_pro(self, gate, store):
        sub = seed(store, PlanType.FREE, SubscriptionStatus.TRIAL)
        sub.trial_end_date = START_TIME + timedelta(days=2)
        store.save(sub)
        assert gate.effective_tier() == PlanType.PRO

    def test_trial_keeps_premium(self, gate, store):
        sub = seed(store, PlanType.PREMIUM, SubscriptionStatus.TRIAL)
        sub.trial_end_date = START_TIME + timedelta(days=2)
        store.save(sub)
        assert gate.effective_tier() == PlanType.PREMIUM

    def test_lapsed_trial_is_free(self, gate, lifecycle, clock):
        lifecycle.start_trial()
        clock.advance(days=8)
        assert gate.effective_tier() == PlanType.FREE

    def test_grace_keeps_plan(self, gate, store):
        seed(store, PlanType.PRO, SubscriptionStatus.GRACE)
        assert gate.effective_tier() == PlanType.PRO


# ============================================================================
# ACCESS CHECKS
# ============================================================================

class TestCheckAccess:

    def test_free_denied_pro(self, gate, store):
        assert gate.check_access("stock_control", PlanType.PRO) is False

    def test_free_allowed_free(self, gate):
        assert gate.check_access("quotes", PlanType.FREE) is True

    def test_start_counts_as_free(self, gate):
        assert gate.check_access("quotes", "start") is True

    def test_premium_allows_everything(self, gate, store):
        seed(store, PlanType.PREMIUM, SubscriptionStatus.ACTIVE)
        assert gate.check_access("stock_control", "pro") is True
        assert gate.check_access("equipment_maintenance", "premium") is True

    def test_pro_denied_premium(self, gate, store):
        seed(store, PlanType.PRO, SubscriptionStatus.ACTIVE)
        assert gate.check_access("equipment_maintenance", PlanType.PREMIUM) is False

    def test_unknown_tier_denied(self, gate, store):
        seed(store, PlanType.PREMIUM, SubscriptionStatus.ACTIVE)
        assert gate.check_access("mystery", "enterprise") is False

    def test_trial_user_gets_pro_features(self, gate, lifecycle):
        lifecycle.start_trial()
        assert gate.check_pro("stock_control") is True

    def test_expired_trial_scenario(self, gate, lifecycle, store, clock):
        lifecycle.start_trial()
        clock.set(START_TIME + timedelta(days=8))

        assert lifecycle.is_trial_expired() is True
        assert gate.check_pro("stock_control") is False
        assert gate.prompt.visible is True

    def test_allowed_check_has_no_side_effects(self, gate, store):
        seed(store, PlanType.PRO, SubscriptionStatus.ACTIVE)
        before = store.load()

        gate.check_pro("stock_control")

        assert store.get_events() == []
        assert gate.prompt.visible is False
        assert store.load() == before

    def test_denial_records_event(self, gate, store):
        gate.check_pro("stock_control")

        events = store.get_events()
        assert len(events) == 1
        assert events[0].event == "feature_locked_attempt"
        assert events[0].metadata == {"feature": "stock_control", "required": "pro", "current": "free"}

    def test_denial_shows_prompt(self, gate):
        gate.check_access("equipment_maintenance", PlanType.PREMIUM)
        assert gate.prompt.visible is True
        assert gate.prompt.feature == "equipment_maintenance"
        assert gate.prompt.required_tier == "premium"


# ============================================================================
# UPGRADE PROMPT
# ============================================================================

class TestUpgradePrompt:

    def test_accept_records_intent(self, gate, store):
        gate.check_pro("stock_control")
        gate.accept_upgrade()

        names = [e.event for e in store.get_events()]
        assert names == ["feature_locked_attempt", "intent_pro_upgrade", "clicked_upgrade"]
        assert store.get_events()[1].metadata == {"feature": "stock_control"}
        assert store.get_events()[2].metadata == {"source": "modal"}
        assert gate.prompt.visible is False

    def test_dismiss_records_dismissal(self, gate, store):
        gate.check_pro("branding")
        gate.dismiss_upgrade()

        last = store.get_events()[-1]
        assert last.event == "feature_locked_attempt"
        assert last.metadata == {"feature": "branding", "action": "dismissed"}
        assert gate.prompt.visible is False

    def test_upgrade_messages(self, gate):
        assert "PRO" in gate.get_upgrade_message("stock_control", PlanType.PRO)
        assert "Stock Control" in gate.get_upgrade_message("stock_control", PlanType.PRO)
        assert "PREMIUM" in gate.get_upgrade_message("equipment_maintenance", "premium")


# ============================================================================
# DECORATOR
# ============================================================================

class TestTierRequired:

    def test_sync_allowed(self, gate, store):
        seed(store, PlanType.PRO, SubscriptionStatus.ACTIVE)

        @tier_required(gate, "stock_control")
        def open_stock():
            return "opened"

        assert open_stock() == "opened"

    def test_sync_denied(self, gate):
        @tier_required(gate, "stock_control")
        def open_stock():
            return "opened"

        with pytest.raises(FeatureLockedError) as exc_info:
            open_stock()
        assert exc_info.value.feature == "stock_control"
        assert exc_info.value.required_tier == "pro"

    def test_async_denied(self, gate):
        @tier_required(gate, "equipment_maintenance", PlanType.PREMIUM)
        async def schedule():
            return "scheduled"

        with pytest.raises(FeatureLockedError):
            asyncio.run(schedule())

    def test_async_allowed(self, gate, store):
        seed(store, PlanType.PREMIUM, SubscriptionStatus.ACTIVE)

        @tier_required(gate, "equipment_maintenance", PlanType.PREMIUM)
        async def schedule():
            return "scheduled"

        assert asyncio.run(schedule()) == "scheduled"

    def test_preserves_name(self, gate):
        @tier_required(gate, "stock_control")
        def open_stock():
            """Open the stock page"""

        assert open_stock.__name__ == "open_stock"
        assert open_stock.__doc__ == "Open the stock page"
