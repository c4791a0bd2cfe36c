"""
Entitlement Service - the operations UI collaborators call.

Composes the store, lifecycle engine, tier gate, churn flow and onboarding
helpers around one injected EntitlementStore. Build one per installation
(``get_entitlement_service()`` builds the default from settings), or pass
your own store for an isolated instance.
"""

from datetime import datetime
from typing import Optional, Dict, Any, Callable, List

from config import settings
from entitlement.churn import ChurnFlow
from entitlement.lifecycle import LifecycleEngine
from entitlement.models import Subscription, PlanType
from entitlement.onboarding import (
    ChecklistStep,
    evaluate_checklist,
    get_onboarding_message,
    sync_checklist,
)
from entitlement.owner_account import OwnerAccount, StoredOwnerAccount, CompanyPlan
from entitlement.storage import EntitlementStore, JsonFileBackend, MemoryBackend, SaveResult
from entitlement.tier_gate import TierGate
from utils.logger import logger


class EntitlementService:
    """Facade over the entitlement engine for one installation"""

    def __init__(
        self,
        store: EntitlementStore,
        clock: Optional[Callable[[], datetime]] = None,
        owner: Optional[OwnerAccount] = None,
    ):
        self.store = store
        self.clock = clock or store.clock
        self.owner = owner or StoredOwnerAccount(store)
        self.lifecycle = LifecycleEngine(store, self.clock)
        self.gate = TierGate(store, self.lifecycle)

    # ========== Record ==========

    def get_subscription(self) -> Subscription:
        return self.store.load()

    def save_subscription(self, subscription: Subscription) -> SaveResult:
        return self.store.save(subscription)

    def track_event(self, name: str, metadata: Optional[Dict[str, Any]] = None) -> bool:
        return self.store.append_event(name, metadata)

    # ========== Lifecycle ==========

    def refresh(self) -> Subscription:
        return self.lifecycle.refresh()

    def start_trial(self) -> Subscription:
        return self.lifecycle.start_trial()

    def is_trial_expired(self) -> bool:
        return self.lifecycle.is_trial_expired()

    def get_trial_days_remaining(self) -> int:
        return self.lifecycle.get_trial_days_remaining()

    def expire_trial(self) -> Subscription:
        return self.lifecycle.expire_trial()

    def increment_quotes_created(self) -> Subscription:
        return self.lifecycle.increment_quotes_created()

    def update_last_active(self) -> Subscription:
        return self.lifecycle.update_last_active()

    def confirm_payment(self, plan_type: Optional[PlanType] = None, paid_until=None) -> Subscription:
        return self.lifecycle.confirm_payment(plan_type, paid_until)

    def mark_canceled(self) -> Subscription:
        return self.lifecycle.mark_canceled()

    # ========== Gating ==========

    def check_access(self, feature_name: str, min_tier) -> bool:
        return self.gate.check_access(feature_name, min_tier)

    def check_pro(self, feature_name: str) -> bool:
        return self.gate.check_pro(feature_name)

    def effective_tier(self) -> PlanType:
        return self.gate.effective_tier()

    # ========== Onboarding ==========

    def get_onboarding_message(self) -> Optional[str]:
        subscription = self.store.load()
        return get_onboarding_message(
            status=subscription.subscription_status,
            plan_type=subscription.plan_type,
            days_used=subscription.days_used,
            quotes_created=subscription.quotes_created,
            trial_days_remaining=self.lifecycle.get_trial_days_remaining(subscription),
        )

    def onboarding_checklist(
        self,
        company_name: str,
        has_priced_service: bool,
        has_product: bool,
    ) -> List[ChecklistStep]:
        steps = evaluate_checklist(company_name, has_priced_service, has_product)
        return sync_checklist(self.store, steps)

    # ========== Churn ==========

    def start_churn_flow(self, on_canceled: Optional[Callable[[Subscription], None]] = None) -> ChurnFlow:
        return ChurnFlow(self.store, self.lifecycle, self.owner, on_canceled=on_canceled)

    # ========== Owner ==========

    def company_plan(self) -> CompanyPlan:
        """Plan view from the injected owner, or the stored company blob if it has none"""
        owner = self.owner if hasattr(self.owner, "plan") else StoredOwnerAccount(self.store)
        return owner.plan(self.clock())


def build_store() -> EntitlementStore:
    """Store for the configured backend"""
    if settings.STORAGE_BACKEND == "memory":
        return EntitlementStore(MemoryBackend())

    settings.create_directories()
    return EntitlementStore(JsonFileBackend(settings.ENTITLEMENT_DIR))


# Global service instance
_entitlement_service: Optional[EntitlementService] = None


def get_entitlement_service() -> EntitlementService:
    """Get the global entitlement service instance"""
    global _entitlement_service
    if _entitlement_service is None:
        _entitlement_service = EntitlementService(build_store())
        logger.info(f"EntitlementService initialized with {settings.STORAGE_BACKEND} storage")
    return _entitlement_service
