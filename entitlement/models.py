"""
Entitlement Data Models

Defines the subscription record, the analytics event and the tier
arithmetic shared by every component. The persisted shape uses the
camelCase keys the rest of the application already reads, so
``to_dict``/``from_dict`` are the wire codec for the local store.
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Dict, Any
from datetime import datetime, timezone


# Fixed durations and capacities
TRIAL_DURATION_DAYS = 7
GRACE_PERIOD_DAYS = 3
EVENT_LOG_CAPACITY = 500


class PlanType(str, Enum):
    """
    Nominal purchased plan.

    START is a commercial label only: it gates like FREE.
    """
    FREE = "free"
    START = "start"
    PRO = "pro"
    PREMIUM = "premium"


class SubscriptionStatus(str, Enum):
    """Enforced lifecycle state"""
    INACTIVE = "inactive"
    TRIAL = "trial"
    ACTIVE = "active"
    CANCELED = "canceled"  # only written by the payment webhook collaborator
    GRACE = "grace"


class ChurnReason(str, Enum):
    """Closed set of cancellation reasons offered to the user"""
    EXPENSIVE = "expensive"
    NOT_USING = "not_using"
    MISSING_FEATURE = "missing_feature"
    OTHER = "other"


# Tier hierarchy for gating (higher = more features).
# Only pro and premium are elevated; every other label is level 0.
TIER_HIERARCHY = {
    PlanType.FREE: 0,
    PlanType.START: 0,
    PlanType.PRO: 1,
    PlanType.PREMIUM: 2,
}


def tier_level(tier) -> int:
    """Numeric gating level of a plan label. Unrecognised labels are 0."""
    try:
        return TIER_HIERARCHY[PlanType(tier)]
    except ValueError:
        return 0


def is_known_tier(tier) -> bool:
    """True if ``tier`` is one of the plan labels"""
    try:
        PlanType(tier)
        return True
    except ValueError:
        return False


def utc_now() -> datetime:
    """Default clock: timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a stored timestamp.

    Accepts ISO-8601 strings (including the trailing ``Z`` form browsers
    write) and datetimes. Naive values are taken as UTC. Raises ValueError
    on anything else.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Unsupported timestamp value: {value!r}")

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize a timestamp as ISO-8601 UTC, or None"""
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


def _as_count(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ValueError(f"Counter cannot be a boolean: {value!r}")
    return int(value)


def _as_flag(value: Any) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"Flag must be a boolean: {value!r}")
    return value


# Attribute name -> persisted key
WIRE_FIELDS = {
    'plan_type': 'planType',
    'trial_start_date': 'trialStartDate',
    'trial_end_date': 'trialEndDate',
    'subscription_status': 'subscriptionStatus',
    'subscription_start': 'subscriptionStart',
    'subscription_end': 'subscriptionEnd',
    'last_active_date': 'lastActiveDate',
    'intent_upgrade_flag': 'intentUpgradeFlag',
    'churn_reason': 'churnReason',
    'onboarding_completed': 'onboardingCompleted',
    'onboarding_step': 'onboardingStep',
    'quotes_created': 'quotesCreated',
    'days_used': 'daysUsed',
    'first_use_date': 'firstUseDate',
}


@dataclass
class Subscription:
    """
    The singleton subscription record of an installation.

    Invariants kept by the lifecycle operations:
    - status TRIAL implies both trial dates are set and end > start
    - status GRACE implies subscription_end and churn_reason are set

    Keys found in the stored blob that this model does not know about are
    kept in ``extra`` and written back unchanged.
    """
    plan_type: PlanType = PlanType.FREE
    subscription_status: SubscriptionStatus = SubscriptionStatus.INACTIVE

    # Trial window
    trial_start_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None

    # Paid / grace window
    subscription_start: Optional[datetime] = None
    subscription_end: Optional[datetime] = None

    # Activity
    last_active_date: Optional[datetime] = None
    first_use_date: Optional[datetime] = None

    intent_upgrade_flag: bool = False
    churn_reason: Optional[str] = None

    # Onboarding checklist
    onboarding_completed: bool = False
    onboarding_step: int = 0

    # Usage counters (never decrease)
    quotes_created: int = 0
    days_used: int = 0

    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def default(cls) -> 'Subscription':
        """Fresh-install record: free, inactive, zero counters, no dates"""
        return cls()

    @property
    def is_trial(self) -> bool:
        return self.subscription_status == SubscriptionStatus.TRIAL

    def to_dict(self) -> dict:
        """Convert to the persisted camelCase shape"""
        data = dict(self.extra)
        data.update({
            'planType': self.plan_type.value,
            'trialStartDate': format_timestamp(self.trial_start_date),
            'trialEndDate': format_timestamp(self.trial_end_date),
            'subscriptionStatus': self.subscription_status.value,
            'subscriptionStart': format_timestamp(self.subscription_start),
            'subscriptionEnd': format_timestamp(self.subscription_end),
            'lastActiveDate': format_timestamp(self.last_active_date),
            'intentUpgradeFlag': self.intent_upgrade_flag,
            'churnReason': self.churn_reason,
            'onboardingCompleted': self.onboarding_completed,
            'onboardingStep': self.onboarding_step,
            'quotesCreated': self.quotes_created,
            'daysUsed': self.days_used,
            'firstUseDate': format_timestamp(self.first_use_date),
        })
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'Subscription':
        """
        Create from the persisted shape.

        Missing keys take their defaults. Raises ValueError/TypeError when a
        present value cannot be interpreted; the store treats that as a
        corrupt record.
        """
        if not isinstance(data, dict):
            raise TypeError(f"Subscription record must be an object, got {type(data).__name__}")

        known = set(WIRE_FIELDS.values())
        churn_reason = data.get('churnReason')

        return cls(
            plan_type=PlanType(data.get('planType') or PlanType.FREE.value),
            subscription_status=SubscriptionStatus(
                data.get('subscriptionStatus') or SubscriptionStatus.INACTIVE.value
            ),
            trial_start_date=parse_timestamp(data.get('trialStartDate')),
            trial_end_date=parse_timestamp(data.get('trialEndDate')),
            subscription_start=parse_timestamp(data.get('subscriptionStart')),
            subscription_end=parse_timestamp(data.get('subscriptionEnd')),
            last_active_date=parse_timestamp(data.get('lastActiveDate')),
            first_use_date=parse_timestamp(data.get('firstUseDate')),
            intent_upgrade_flag=_as_flag(data.get('intentUpgradeFlag')),
            churn_reason=str(churn_reason) if churn_reason is not None else None,
            onboarding_completed=_as_flag(data.get('onboardingCompleted')),
            onboarding_step=_as_count(data.get('onboardingStep')),
            quotes_created=_as_count(data.get('quotesCreated')),
            days_used=_as_count(data.get('daysUsed')),
            extra={k: v for k, v in data.items() if k not in known},
        )


@dataclass
class AnalyticsEvent:
    """One entry of the audit/telemetry trail"""
    id: str
    event: str
    timestamp: str
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> dict:
        data = {
            'id': self.id,
            'event': self.event,
            'timestamp': self.timestamp,
        }
        # Absent rather than null, matching what the UI layer writes
        if self.metadata is not None:
            data['metadata'] = self.metadata
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'AnalyticsEvent':
        return cls(
            id=str(data['id']),
            event=str(data['event']),
            timestamp=str(data['timestamp']),
            metadata=data.get('metadata'),
        )
