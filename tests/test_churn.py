#!/usr/bin/env python3
"""
Churn / Retention Flow Tests
"""

import json
import pytest
import sys
import os
from datetime import timedelta

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from entitlement.churn import ChurnFlow, ChurnStep, ChurnOutcome, RETENTION_OFFER
from entitlement.exceptions import ChurnFlowError, InvalidTransitionError
from entitlement.lifecycle import LifecycleEngine
from entitlement.models import PlanType, SubscriptionStatus, Subscription
from entitlement.owner_account import StoredOwnerAccount
from entitlement.storage import COMPANY_KEY, SUBSCRIPTION_KEY, EntitlementStore, MemoryBackend, SaveResult
from tests.conftest import START_TIME


class FailingOwner:
    def revoke_pro(self):
        return SaveResult(ok=False, error="quota exceeded")


@pytest.fixture
def active_store(store, memory_backend):
    sub = Subscription.default()
    sub.plan_type = PlanType.PRO
    sub.subscription_status = SubscriptionStatus.ACTIVE
    store.save(sub)
    memory_backend.set(COMPANY_KEY, json.dumps({"name": "Brilho Limpeza", "isPro": True, "planTier": "pro"}))
    return store


@pytest.fixture
def flow(active_store):
    lifecycle = LifecycleEngine(active_store)
    return ChurnFlow(active_store, lifecycle, StoredOwnerAccount(active_store))


class TestReasonStep:

    def test_reason_returns_offer(self, flow):
        offer = flow.select_reason("expensive")
        assert offer == RETENTION_OFFER
        assert offer.id == "50_percent_2months"
        assert offer.discount_percent == 50
        assert offer.duration_months == 2
        assert flow.step == ChurnStep.OFFER

    def test_reason_logged_immediately(self, flow, active_store):
        flow.select_reason("not_using")
        events = active_store.get_events()
        assert [e.event for e in events] == ["canceled_subscription"]
        assert events[0].metadata == {"reason": "not_using"}

    def test_reason_does_not_touch_record(self, flow, active_store):
        before = active_store.load()
        flow.select_reason("other")
        assert active_store.load() == before

    def test_unknown_reason_rejected(self, flow):
        with pytest.raises(ValueError):
            flow.select_reason("too_blue")
        assert flow.step == ChurnStep.REASON

    def test_reason_twice_rejected(self, flow):
        flow.select_reason("expensive")
        with pytest.raises(ChurnFlowError):
            flow.select_reason("other")


class TestAcceptOffer:

    def test_accept_reactivates(self, flow, active_store):
        flow.select_reason("expensive")
        sub = flow.accept_offer()

        assert sub.subscription_status == SubscriptionStatus.ACTIVE
        assert sub.churn_reason is None
        assert flow.outcome == ChurnOutcome.RETAINED
        assert flow.is_open is False

    def test_accept_logs_churn_prevented(self, flow, active_store):
        flow.select_reason("expensive")
        flow.accept_offer()

        last = active_store.get_events()[-1]
        assert last.event == "churn_prevented"
        assert last.metadata == {"reason": "expensive", "offer": "50_percent_2months"}

    def test_accept_keeps_company_pro(self, flow, active_store):
        flow.select_reason("expensive")
        flow.accept_offer()
        assert StoredOwnerAccount(active_store).load()["isPro"] is True

    def test_accept_before_reason_rejected(self, flow):
        with pytest.raises(ChurnFlowError):
            flow.accept_offer()


class TestConfirmCancel:

    def test_confirm_moves_to_grace(self, flow, active_store):
        flow.select_reason("missing_feature")
        sub = flow.confirm_cancel()

        assert sub.subscription_status == SubscriptionStatus.GRACE
        assert sub.subscription_end == START_TIME + timedelta(days=3)
        assert sub.churn_reason == "missing_feature"
        assert active_store.load() == sub

    def test_confirm_revokes_company_pro(self, flow, active_store):
        flow.select_reason("expensive")
        flow.confirm_cancel()

        company = StoredOwnerAccount(active_store).load()
        assert company["isPro"] is False
        assert company["name"] == "Brilho Limpeza"
        assert company["planTier"] == "pro"

    def test_confirm_logs_twice(self, flow, active_store):
        flow.select_reason("expensive")
        flow.confirm_cancel()

        events = active_store.get_events()
        assert [e.event for e in events] == ["canceled_subscription", "canceled_subscription"]
        assert events[1].metadata == {"reason": "expensive", "accepted_offer": False}

    def test_confirm_calls_callback(self, active_store):
        seen = []
        flow = ChurnFlow(
            active_store,
            LifecycleEngine(active_store),
            StoredOwnerAccount(active_store),
            on_canceled=seen.append,
        )
        flow.select_reason("other")
        flow.confirm_cancel()

        assert len(seen) == 1
        assert seen[0].subscription_status == SubscriptionStatus.GRACE

    def test_owner_failure_does_not_block(self, active_store):
        flow = ChurnFlow(active_store, LifecycleEngine(active_store), FailingOwner())
        flow.select_reason("expensive")
        assert flow.confirm_cancel().subscription_status == SubscriptionStatus.GRACE
        assert flow.outcome == ChurnOutcome.CANCELED

    def test_no_reoffer_after_close(self, flow):
        flow.select_reason("expensive")
        flow.confirm_cancel()
        with pytest.raises(ChurnFlowError):
            flow.accept_offer()
        with pytest.raises(ChurnFlowError):
            flow.select_reason("other")

    def test_confirm_from_grace_rejected(self, store):
        sub = Subscription.default()
        sub.subscription_status = SubscriptionStatus.GRACE
        store.save(sub)

        flow = ChurnFlow(store, LifecycleEngine(store), StoredOwnerAccount(store))
        flow.select_reason("expensive")
        with pytest.raises(InvalidTransitionError):
            flow.confirm_cancel()
        assert flow.step == ChurnStep.CLOSED
        assert flow.outcome == ChurnOutcome.ABANDONED
        assert store.load().subscription_status == SubscriptionStatus.GRACE


# ============================================================================
# FLOW FROM A TRIAL
# ============================================================================

@pytest.fixture
def trial_store(store, memory_backend):
    LifecycleEngine(store).start_trial()
    memory_backend.set(COMPANY_KEY, json.dumps({"name": "Brilho Limpeza", "isPro": True, "planTier": "pro"}))
    return store


class RecordingBackend(MemoryBackend):
    """Remembers the status of every subscription record written"""

    def __init__(self):
        super().__init__()
        self.saved_statuses = []

    def set(self, key, value):
        if key == SUBSCRIPTION_KEY:
            self.saved_statuses.append(json.loads(value)["subscriptionStatus"])
        super().set(key, value)


class TestTrialChurn:

    def test_confirm_from_trial_goes_to_grace(self, trial_store, clock):
        clock.advance(days=2)
        flow = ChurnFlow(trial_store, LifecycleEngine(trial_store), StoredOwnerAccount(trial_store))
        flow.select_reason("not_using")
        sub = flow.confirm_cancel()

        assert sub.subscription_status == SubscriptionStatus.GRACE
        assert sub.subscription_end == START_TIME + timedelta(days=5)
        assert sub.churn_reason == "not_using"
        assert trial_store.load() == sub
        assert StoredOwnerAccount(trial_store).load()["isPro"] is False

    def test_accept_from_trial_goes_straight_to_active(self, clock):
        backend = RecordingBackend()
        store = EntitlementStore(backend, clock=clock)
        LifecycleEngine(store).start_trial()
        backend.set(COMPANY_KEY, json.dumps({"isPro": True, "planTier": "pro"}))

        flow = ChurnFlow(store, LifecycleEngine(store), StoredOwnerAccount(store))
        flow.select_reason("expensive")
        sub = flow.accept_offer()

        assert sub.subscription_status == SubscriptionStatus.ACTIVE
        assert sub.churn_reason is None
        assert backend.saved_statuses == ["trial", "active"]
        assert StoredOwnerAccount(store).load()["isPro"] is True


# ============================================================================
# FLOWS THAT CANNOT COMPLETE
# ============================================================================

class TestFlowClosesWhenBlocked:

    def test_reason_refused_without_subscription(self, store):
        flow = ChurnFlow(store, LifecycleEngine(store), StoredOwnerAccount(store))

        with pytest.raises(ChurnFlowError):
            flow.select_reason("expensive")

        assert flow.is_open is False
        assert flow.outcome == ChurnOutcome.ABANDONED
        assert store.get_events() == []

    def test_reason_refused_when_canceled(self, store):
        sub = Subscription.default()
        sub.subscription_status = SubscriptionStatus.CANCELED
        store.save(sub)

        flow = ChurnFlow(store, LifecycleEngine(store), StoredOwnerAccount(store))
        with pytest.raises(ChurnFlowError):
            flow.select_reason("other")

    def test_grace_can_still_accept(self, store):
        sub = Subscription.default()
        sub.subscription_status = SubscriptionStatus.GRACE
        store.save(sub)

        flow = ChurnFlow(store, LifecycleEngine(store), StoredOwnerAccount(store))
        flow.select_reason("expensive")
        assert flow.accept_offer().subscription_status == SubscriptionStatus.ACTIVE

    def test_abandon_leaves_record(self, flow, active_store):
        before = active_store.load()
        flow.select_reason("expensive")
        flow.abandon()

        assert flow.is_open is False
        assert flow.outcome == ChurnOutcome.ABANDONED
        assert active_store.load() == before
        with pytest.raises(ChurnFlowError):
            flow.accept_offer()

    def test_abandon_after_outcome_keeps_outcome(self, flow):
        flow.select_reason("expensive")
        flow.accept_offer()
        flow.abandon()
        assert flow.outcome == ChurnOutcome.RETAINED


class TestOwnerAccount:

    def test_missing_company_defaults(self, store):
        assert StoredOwnerAccount(store).load() == {"isPro": False, "planTier": "free"}

    def test_corrupt_company_defaults(self, store, memory_backend):
        memory_backend.set(COMPANY_KEY, "not json")
        assert StoredOwnerAccount(store).load() == {"isPro": False, "planTier": "free"}

    def test_revoke_on_missing_company(self, store):
        assert StoredOwnerAccount(store).revoke_pro()
        assert StoredOwnerAccount(store).load()["isPro"] is False

    def test_plan_view_trial_active(self, store, memory_backend):
        trial_end = (START_TIME + timedelta(days=2, hours=3)).isoformat()
        memory_backend.set(COMPANY_KEY, json.dumps({"planTier": "free", "trialEndsAt": trial_end}))

        plan = StoredOwnerAccount(store).plan(START_TIME)
        assert plan.is_trial_active is True
        assert plan.trial_days_remaining == 3
        assert plan.is_pro is True
        assert plan.plan_tier == PlanType.FREE

    def test_plan_view_premium(self, store, memory_backend):
        memory_backend.set(COMPANY_KEY, json.dumps({"planTier": "premium"}))
        plan = StoredOwnerAccount(store).plan(START_TIME)
        assert plan.is_pro is True
        assert plan.is_trial_active is False
        assert plan.trial_days_remaining == 0
