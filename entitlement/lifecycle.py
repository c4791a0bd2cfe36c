"""
Trial & Lifecycle Engine

Owns every mutation of the subscription record apart from the raw
get/set. Each operation is a read-modify-write of the whole record through
the store. Expiry is detected lazily when asked; nothing here runs on a timer.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from entitlement.models import (
    Subscription,
    PlanType,
    ChurnReason,
    TRIAL_DURATION_DAYS,
    GRACE_PERIOD_DAYS,
    utc_now,
)
from entitlement.state_machine import LifecycleAction, transition
from entitlement.storage import EntitlementStore
from utils.logger import logger


ONE_DAY = timedelta(days=1)


class LifecycleEngine:
    """
    State machine driver over the persisted subscription record.

    Usage:
        engine = LifecycleEngine(store)
        engine.refresh()              # at application start
        engine.start_trial()
        engine.get_trial_days_remaining()
    """

    TRIAL_DURATION = timedelta(days=TRIAL_DURATION_DAYS)
    GRACE_PERIOD = timedelta(days=GRACE_PERIOD_DAYS)

    def __init__(self, store: EntitlementStore, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.clock = clock or store.clock or utc_now

    # ========== Trial ==========

    def start_trial(self) -> Subscription:
        """
        Start the 7-day PRO trial.

        Raises:
            InvalidTransitionError: unless the subscription is inactive
        """
        now = self.clock()

        def _start(sub: Subscription):
            transition(sub, LifecycleAction.START_TRIAL)
            sub.plan_type = PlanType.PRO
            sub.trial_start_date = now
            sub.trial_end_date = now + self.TRIAL_DURATION
            sub.intent_upgrade_flag = False

        subscription = self.store.update(_start)
        self.store.append_event("started_trial")
        logger.info(f"Trial started, ends {subscription.trial_end_date.isoformat()}")
        return subscription

    def is_trial_expired(self, subscription: Optional[Subscription] = None) -> bool:
        """True iff the subscription is in trial and its end has passed. Does not mutate."""
        sub = subscription or self.store.load()
        if not sub.is_trial or sub.trial_end_date is None:
            return False
        return self.clock() > sub.trial_end_date

    def get_trial_days_remaining(self, subscription: Optional[Subscription] = None) -> int:
        """Whole days left in the trial, rounded up, never negative. 0 without a trial end."""
        sub = subscription or self.store.load()
        if sub.trial_end_date is None:
            return 0
        remaining = (sub.trial_end_date - self.clock()) / ONE_DAY
        return max(0, math.ceil(remaining))

    def expire_trial(self) -> Subscription:
        """
        Close an elapsed trial: back to inactive on the free plan.

        Hook for whoever observes ``is_trial_expired()``; never called
        automatically.
        """
        def _expire(sub: Subscription):
            transition(sub, LifecycleAction.EXPIRE_TRIAL)
            sub.plan_type = PlanType.FREE

        subscription = self.store.update(_expire)
        self.store.append_event("trial_expired")
        return subscription

    # ========== Usage counters ==========

    def update_last_active(self) -> Subscription:
        """
        Count today as a day of use (at most once per UTC calendar day) and
        stamp the activity time.
        """
        now = self.clock()

        def _touch(sub: Subscription):
            today = now.astimezone(timezone.utc).date()
            last_day = sub.last_active_date.astimezone(timezone.utc).date() if sub.last_active_date else None
            if last_day != today:
                sub.days_used += 1
            sub.last_active_date = now
            if sub.first_use_date is None:
                sub.first_use_date = now

        return self.store.update(_touch)

    def increment_quotes_created(self) -> Subscription:
        def _increment(sub: Subscription):
            sub.quotes_created += 1

        return self.store.update(_increment)

    # ========== Paid lifecycle ==========

    def cancel_to_grace(self, reason: ChurnReason) -> Subscription:
        """Commit a cancellation: grace for GRACE_PERIOD with the churn reason recorded"""
        reason = ChurnReason(reason)
        now = self.clock()

        def _cancel(sub: Subscription):
            transition(sub, LifecycleAction.CANCEL)
            sub.subscription_end = now + self.GRACE_PERIOD
            sub.churn_reason = reason.value

        subscription = self.store.update(_cancel)
        logger.info(f"Subscription moved to grace until {subscription.subscription_end.isoformat()} ({reason.value})")
        return subscription

    def reactivate(self) -> Subscription:
        """Retention accepted: active again, churn reason cleared"""
        def _reactivate(sub: Subscription):
            transition(sub, LifecycleAction.RETAIN)
            sub.churn_reason = None

        return self.store.update(_reactivate)

    def confirm_payment(
        self,
        plan_type: Optional[PlanType] = None,
        paid_until: Optional[datetime] = None,
    ) -> Subscription:
        """Payment collaborator hook: the subscription is paid and active"""
        now = self.clock()

        def _activate(sub: Subscription):
            transition(sub, LifecycleAction.CONFIRM_PAYMENT)
            if plan_type is not None:
                sub.plan_type = PlanType(plan_type)
            sub.subscription_start = now
            sub.subscription_end = paid_until
            sub.churn_reason = None

        subscription = self.store.update(_activate)
        self.store.append_event("subscription_activated", {"plan": subscription.plan_type.value})
        return subscription

    def mark_canceled(self) -> Subscription:
        """Payment webhook hook: the subscription is finally canceled"""
        subscription = self.store.update(lambda sub: transition(sub, LifecycleAction.EXTERNAL_CANCEL))
        self.store.append_event("subscription_canceled_externally")
        return subscription

    # ========== Start-up ==========

    def refresh(self) -> Subscription:
        """
        Application start hook: bump the day counter and report trial expiry.

        Expiry is only logged; moving out of trial is left to the caller.
        """
        subscription = self.update_last_active()
        if self.is_trial_expired(subscription):
            logger.info("Trial period has elapsed; awaiting expiry handling")
        return subscription
