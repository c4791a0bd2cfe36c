"""
Onboarding nudges and checklist.

``get_onboarding_message`` is a pure function of the subscription state and
is cheap enough to call on every render. ``sync_checklist`` is the only
writer here: it records checklist progress on the subscription record.
"""

from dataclasses import dataclass
from typing import Optional, List

from entitlement.models import SubscriptionStatus, PlanType
from entitlement.storage import EntitlementStore


TRIAL_WARNING_DAYS = 3
UPSELL_DAYS_USED = 5
STOCK_UPSELL_QUOTES = 3
BRANDING_UPSELL_QUOTES = 1

DEFAULT_COMPANY_NAME = "Hig Clean Tec"


def get_onboarding_message(
    status: SubscriptionStatus,
    plan_type: PlanType,
    days_used: int,
    quotes_created: int,
    trial_days_remaining: int,
) -> Optional[str]:
    """
    Pick the single advisory message to show, first match wins.

    Order: paid users see nothing, then the trial-ending warning, then the
    free-plan upsells by days of use and by quotes created.
    """
    status = SubscriptionStatus(status)
    is_free = PlanType(plan_type) == PlanType.FREE
    quotes = quotes_created or 0

    if status == SubscriptionStatus.ACTIVE:
        return None

    if status == SubscriptionStatus.TRIAL and 0 < trial_days_remaining <= TRIAL_WARNING_DAYS:
        plural = "s" if trial_days_remaining > 1 else ""
        return f"Your trial ends in {trial_days_remaining} day{plural}. Don't lose your premium reports."

    if is_free and (days_used or 0) >= UPSELL_DAYS_USED:
        return "Organized businesses earn more. Try PRO mode for free."

    if is_free and quotes >= STOCK_UPSELL_QUOTES:
        return "You've already used the system 3 times. Unlock automatic stock control."

    if is_free and quotes >= BRANDING_UPSELL_QUOTES:
        return "Want your reports to carry your brand and a professional look? Activate PRO."

    return None


def is_trial_warning(status: SubscriptionStatus, trial_days_remaining: int) -> bool:
    """Whether the banner should use the trial-ending styling"""
    return SubscriptionStatus(status) == SubscriptionStatus.TRIAL and trial_days_remaining <= TRIAL_WARNING_DAYS


# ============================================================================
# Checklist
# ============================================================================

@dataclass
class ChecklistStep:
    id: str
    label: str
    done: bool
    path: str


def evaluate_checklist(company_name: str, has_priced_service: bool, has_product: bool) -> List[ChecklistStep]:
    """The three first-run setup steps and whether each is done"""
    company_done = bool(company_name) and company_name != DEFAULT_COMPANY_NAME
    return [
        ChecklistStep("company", "Register your company", company_done, "/settings"),
        ChecklistStep("service", "Register your first service", bool(has_priced_service), "/settings"),
        ChecklistStep("product", "Register your first product", bool(has_product), "/products"),
    ]


def sync_checklist(store: EntitlementStore, steps: List[ChecklistStep]) -> List[ChecklistStep]:
    """
    Record checklist progress and mark onboarding complete once every step is done.

    Returns the steps still worth showing: an empty list once onboarding
    is complete.
    """
    subscription = store.load()
    if subscription.onboarding_completed:
        return []

    done_count = sum(1 for step in steps if step.done)
    completed = bool(steps) and done_count == len(steps)

    if done_count > subscription.onboarding_step or completed:
        subscription.onboarding_step = done_count
        subscription.onboarding_completed = completed
        store.save(subscription)

    return [] if completed else steps
