"""
Entitlement Engine for Hig Clean Tec

Client-resident subscription and entitlement tracking:
- Trial and subscription lifecycle over one locally persisted record
- Feature gating by plan tier, with trial elevation to PRO
- Per-plan device-count limits consumed by route protection
- Churn/retention flow for cancellation attempts
- Onboarding nudges derived from usage counters

Architecture:
- EntitlementStore persists the record and a bounded event log
- LifecycleEngine applies status transitions through one validated table
- TierGate, ChurnFlow and the onboarding helpers read and write via the store
- EntitlementService wires them together for the UI layer
"""

from entitlement.models import (
    PlanType,
    SubscriptionStatus,
    ChurnReason,
    Subscription,
    AnalyticsEvent,
    tier_level,
)
from entitlement.exceptions import (
    EntitlementError,
    InvalidTransitionError,
    ChurnFlowError,
    StorageQuotaExceeded,
)
from entitlement.storage import (
    EntitlementStore,
    JsonFileBackend,
    MemoryBackend,
    SaveResult,
)
from entitlement.state_machine import LifecycleAction
from entitlement.lifecycle import LifecycleEngine
from entitlement.tier_gate import TierGate, UpgradePrompt, FeatureLockedError, tier_required
from entitlement.churn import ChurnFlow, ChurnStep, ChurnOutcome, RetentionOffer, RETENTION_OFFER
from entitlement.onboarding import get_onboarding_message, evaluate_checklist
from entitlement.device_guard import (
    DeviceClass,
    DeviceDecision,
    DeviceSession,
    RouteAccess,
    evaluate_device_access,
    check_route_access,
)
from entitlement.owner_account import OwnerAccount, StoredOwnerAccount, CompanyPlan
from entitlement.service import EntitlementService, get_entitlement_service

__all__ = [
    # Core model
    'PlanType',
    'SubscriptionStatus',
    'ChurnReason',
    'Subscription',
    'AnalyticsEvent',
    'tier_level',
    # Errors
    'EntitlementError',
    'InvalidTransitionError',
    'ChurnFlowError',
    'StorageQuotaExceeded',
    'FeatureLockedError',
    # Storage
    'EntitlementStore',
    'JsonFileBackend',
    'MemoryBackend',
    'SaveResult',
    # Lifecycle and gating
    'LifecycleAction',
    'LifecycleEngine',
    'TierGate',
    'UpgradePrompt',
    'tier_required',
    # Churn
    'ChurnFlow',
    'ChurnStep',
    'ChurnOutcome',
    'RetentionOffer',
    'RETENTION_OFFER',
    # Onboarding
    'get_onboarding_message',
    'evaluate_checklist',
    # Devices
    'DeviceClass',
    'DeviceDecision',
    'DeviceSession',
    'RouteAccess',
    'evaluate_device_access',
    'check_route_access',
    # Owner
    'OwnerAccount',
    'StoredOwnerAccount',
    'CompanyPlan',
    # Service
    'EntitlementService',
    'get_entitlement_service',
]
