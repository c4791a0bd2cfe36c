"""
Subscription status transitions.

Every status change goes through ``transition()``, which looks the move up in
TRANSITIONS and raises InvalidTransitionError for anything not listed.
"""

import logging
from enum import Enum
from typing import Dict, Tuple, FrozenSet

from entitlement.exceptions import InvalidTransitionError
from entitlement.models import SubscriptionStatus, Subscription

logger = logging.getLogger(__name__)


class LifecycleAction(str, Enum):
    """Things that can happen to a subscription"""
    START_TRIAL = "start_trial"
    CONFIRM_PAYMENT = "confirm_payment"  # payment collaborator
    RETAIN = "retain"  # retention offer accepted
    CANCEL = "cancel"  # churn flow confirmed
    EXTERNAL_CANCEL = "external_cancel"  # payment webhook
    EXPIRE_TRIAL = "expire_trial"  # expiry observer


S = SubscriptionStatus
A = LifecycleAction

# (from status, action) -> to status
TRANSITIONS: Dict[Tuple[SubscriptionStatus, LifecycleAction], SubscriptionStatus] = {
    (S.INACTIVE, A.START_TRIAL): S.TRIAL,

    (S.INACTIVE, A.CONFIRM_PAYMENT): S.ACTIVE,
    (S.TRIAL, A.CONFIRM_PAYMENT): S.ACTIVE,
    (S.ACTIVE, A.CONFIRM_PAYMENT): S.ACTIVE,
    (S.GRACE, A.CONFIRM_PAYMENT): S.ACTIVE,
    (S.CANCELED, A.CONFIRM_PAYMENT): S.ACTIVE,

    # Retention can land mid-flow (trial/active) or after grace was committed
    (S.TRIAL, A.RETAIN): S.ACTIVE,
    (S.ACTIVE, A.RETAIN): S.ACTIVE,
    (S.GRACE, A.RETAIN): S.ACTIVE,

    (S.TRIAL, A.CANCEL): S.GRACE,
    (S.ACTIVE, A.CANCEL): S.GRACE,

    (S.ACTIVE, A.EXTERNAL_CANCEL): S.CANCELED,
    (S.GRACE, A.EXTERNAL_CANCEL): S.CANCELED,

    (S.TRIAL, A.EXPIRE_TRIAL): S.INACTIVE,
}

del S, A


def allowed_actions(status: SubscriptionStatus) -> FrozenSet[LifecycleAction]:
    """Actions that are legal from ``status``"""
    return frozenset(action for (source, action) in TRANSITIONS if source == status)


def can_transition(status: SubscriptionStatus, action: LifecycleAction) -> bool:
    return (SubscriptionStatus(status), LifecycleAction(action)) in TRANSITIONS


def next_status(status: SubscriptionStatus, action: LifecycleAction) -> SubscriptionStatus:
    """
    Resolve the target status of ``action``.

    Raises:
        InvalidTransitionError: if the move is not in the table
    """
    key = (SubscriptionStatus(status), LifecycleAction(action))
    if key not in TRANSITIONS:
        logger.warning(f"Rejected transition: {key[1].value} from {key[0].value}")
        raise InvalidTransitionError(status=key[0].value, action=key[1].value)
    return TRANSITIONS[key]


def transition(subscription: Subscription, action: LifecycleAction) -> Subscription:
    """Move ``subscription`` to the status ``action`` leads to, in place"""
    subscription.subscription_status = next_status(subscription.subscription_status, action)
    return subscription
