"""
Tier Gate - decides whether a feature is available to the current plan.

Usage:
    gate = TierGate(store, lifecycle)

    # Runtime check (shows the upgrade prompt on deny)
    if gate.check_pro('stock_control'):
        open_stock_page()

    # Decorator-based
    @tier_required(gate, 'equipment_maintenance', PlanType.PREMIUM)
    def schedule_maintenance(...):
        ...

A successful check reads the record and returns. Only a denial records
the blocked feature, raises the upgrade prompt and emits an event.
"""

import asyncio
from dataclasses import dataclass
from functools import wraps
from typing import Optional, Callable, Any, Union

from entitlement.exceptions import EntitlementError
from entitlement.lifecycle import LifecycleEngine
from entitlement.models import Subscription, PlanType, tier_level, is_known_tier
from entitlement.storage import EntitlementStore
from utils.logger import logger


TierLike = Union[PlanType, str]


class FeatureLockedError(EntitlementError):
    """Raised by ``tier_required`` when the effective tier is too low"""

    def __init__(self, feature: str, required_tier: str, message: str):
        self.feature = feature
        self.required_tier = required_tier
        self.message = message
        super().__init__(message)


def _tier_value(tier: TierLike) -> str:
    return tier.value if isinstance(tier, PlanType) else str(tier)


@dataclass
class UpgradePrompt:
    """UI state of the upgrade modal raised by a denied gate check"""
    visible: bool = False
    feature: Optional[str] = None
    required_tier: Optional[str] = None

    def show(self, feature: str, required_tier: str):
        self.visible = True
        self.feature = feature
        self.required_tier = required_tier

    def hide(self):
        self.visible = False


class TierGate:
    """
    Central point for feature access checks.

    The effective tier is the plan on record, raised to PRO while a trial
    is running. A trial whose end has passed grants nothing: the PRO plan it
    wrote was the trial's, so the gate falls back to FREE until the
    lifecycle owner moves the record out of trial.
    """

    def __init__(self, store: EntitlementStore, lifecycle: LifecycleEngine):
        self.store = store
        self.lifecycle = lifecycle
        self.prompt = UpgradePrompt()

    def effective_tier(self, subscription: Optional[Subscription] = None) -> PlanType:
        sub = subscription or self.store.load()

        if sub.is_trial:
            if self.lifecycle.is_trial_expired(sub):
                return PlanType.FREE
            if tier_level(sub.plan_type) < tier_level(PlanType.PRO):
                return PlanType.PRO

        return sub.plan_type

    def has_access(self, min_tier: TierLike, subscription: Optional[Subscription] = None) -> bool:
        """Pure decision, no side effects. Unknown tiers are denied."""
        if not is_known_tier(min_tier):
            return False
        return tier_level(self.effective_tier(subscription)) >= tier_level(min_tier)

    def check_access(self, feature_name: str, min_tier: TierLike) -> bool:
        """
        Check a feature against a minimum tier.

        Returns:
            True if allowed. On False the upgrade prompt is showing and a
            ``feature_locked_attempt`` event has been recorded.
        """
        subscription = self.store.load()
        if self.has_access(min_tier, subscription):
            return True

        required = _tier_value(min_tier)
        self.prompt.show(feature_name, required)
        self.store.append_event("feature_locked_attempt", {
            "feature": feature_name,
            "required": required,
            "current": subscription.plan_type.value,
        })
        logger.info(f"Feature '{feature_name}' locked: requires {required}, plan is {subscription.plan_type.value}")
        return False

    def check_pro(self, feature_name: str) -> bool:
        return self.check_access(feature_name, PlanType.PRO)

    # ========== Upgrade prompt exits ==========

    def accept_upgrade(self):
        """User chose to upgrade from the prompt"""
        feature = self.prompt.feature
        self.store.append_event("intent_pro_upgrade", {"feature": feature})
        self.store.append_event("clicked_upgrade", {"source": "modal"})
        self.prompt.hide()

    def dismiss_upgrade(self):
        """User chose to stay on the current plan"""
        self.store.append_event("feature_locked_attempt", {
            "feature": self.prompt.feature,
            "action": "dismissed",
        })
        self.prompt.hide()

    def get_upgrade_message(self, feature_name: str, min_tier: TierLike) -> str:
        """User-friendly upgrade message for a feature"""
        feature_display = feature_name.replace('_', ' ').title()
        required = _tier_value(min_tier)

        if required == PlanType.PRO.value:
            return f"'{feature_display}' requires a PRO subscription. Upgrade now to unlock it!"
        elif required == PlanType.PREMIUM.value:
            return f"'{feature_display}' requires a PREMIUM subscription. Upgrade now to unlock it!"
        else:
            return f"'{feature_display}' is not available with your current subscription."


def tier_required(gate: TierGate, feature_name: str, min_tier: TierLike = PlanType.PRO):
    """
    Decorator to require a minimum tier for a function.

    Runs the full ``check_access`` (prompt and event on deny) and raises
    FeatureLockedError instead of calling the function.
    """
    def _deny():
        required = _tier_value(min_tier)
        raise FeatureLockedError(
            feature=feature_name,
            required_tier=required,
            message=gate.get_upgrade_message(feature_name, min_tier),
        )

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            if not gate.check_access(feature_name, min_tier):
                _deny()
            return await func(*args, **kwargs)

        @wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            if not gate.check_access(feature_name, min_tier):
                _deny()
            return func(*args, **kwargs)

        # Return appropriate wrapper based on function type
        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
