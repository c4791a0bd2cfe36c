"""
Churn / Retention Flow

Two-step protocol run when a user asks to cancel:

1. Reason capture - one reason from the closed set. Logged right away as
   ``canceled_subscription`` (intent, not outcome). Moves the flow to the offer.
2. Retention offer - 50% off for 2 months.
   - accept: record reactivated in place (never passes through grace),
     ``churn_prevented`` logged. Billing applies the discount, not us.
   - confirm cancel: record to grace for 3 days with the reason, company
     PRO access revoked at once, ``canceled_subscription`` logged again with
     ``accepted_offer: False``.

Either exit closes the flow. There is no re-offer. Closing the modal, or an
exit the record's status does not allow, closes it as abandoned.

A reason is only taken while at least one exit is legal for the record;
an inactive or canceled subscription has nothing to cancel.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Callable

from entitlement.exceptions import ChurnFlowError, InvalidTransitionError
from entitlement.lifecycle import LifecycleEngine
from entitlement.models import ChurnReason, Subscription
from entitlement.owner_account import OwnerAccount
from entitlement.state_machine import LifecycleAction, can_transition
from entitlement.storage import EntitlementStore
from utils.logger import logger


@dataclass(frozen=True)
class RetentionOffer:
    """Fixed incentive presented at the offer step"""
    id: str
    discount_percent: int
    duration_months: int


RETENTION_OFFER = RetentionOffer(id="50_percent_2months", discount_percent=50, duration_months=2)


class ChurnStep(str, Enum):
    REASON = "reason"
    OFFER = "offer"
    CLOSED = "closed"


class ChurnOutcome(str, Enum):
    RETAINED = "retained"
    CANCELED = "canceled"
    ABANDONED = "abandoned"


class ChurnFlow:
    """One run of the cancellation modal"""

    def __init__(
        self,
        store: EntitlementStore,
        lifecycle: LifecycleEngine,
        owner: OwnerAccount,
        on_canceled: Optional[Callable[[Subscription], None]] = None,
        offer: RetentionOffer = RETENTION_OFFER,
    ):
        self.store = store
        self.lifecycle = lifecycle
        self.owner = owner
        self.on_canceled = on_canceled
        self.offer = offer

        self.step = ChurnStep.REASON
        self.reason: Optional[ChurnReason] = None
        self.outcome: Optional[ChurnOutcome] = None

    @property
    def is_open(self) -> bool:
        return self.step != ChurnStep.CLOSED

    def _require_step(self, step: ChurnStep, action: str):
        if self.step != step:
            raise ChurnFlowError(f"Cannot {action} while the churn flow is at step '{self.step.value}'")

    def select_reason(self, reason) -> RetentionOffer:
        """
        Record why the user wants to leave and move to the offer.

        Raises:
            ValueError: reason is not one of ChurnReason
            ChurnFlowError: a reason was already chosen, the flow is closed,
                or the subscription has nothing to cancel
        """
        self._require_step(ChurnStep.REASON, "select a reason")
        reason = ChurnReason(reason)

        status = self.store.load().subscription_status
        if not (can_transition(status, LifecycleAction.RETAIN) or can_transition(status, LifecycleAction.CANCEL)):
            self._close(ChurnOutcome.ABANDONED)
            raise ChurnFlowError(f"No subscription to cancel in status '{status.value}'")

        self.reason = reason
        self.store.append_event("canceled_subscription", {"reason": self.reason.value})
        self.step = ChurnStep.OFFER
        return self.offer

    def accept_offer(self) -> Subscription:
        """Keep the subscription: reactivate it and clear the churn reason"""
        self._require_step(ChurnStep.OFFER, "accept the offer")
        try:
            subscription = self.lifecycle.reactivate()
        except InvalidTransitionError:
            self._close(ChurnOutcome.ABANDONED)
            raise
        self.store.append_event("churn_prevented", {
            "reason": self.reason.value,
            "offer": self.offer.id,
        })
        logger.info(f"Churn prevented ({self.reason.value}) with offer {self.offer.id}")
        self._close(ChurnOutcome.RETAINED)
        return subscription

    def confirm_cancel(self) -> Subscription:
        """Cancel anyway: grace period, access revoked now"""
        self._require_step(ChurnStep.OFFER, "confirm cancellation")
        try:
            subscription = self.lifecycle.cancel_to_grace(self.reason)
        except InvalidTransitionError:
            self._close(ChurnOutcome.ABANDONED)
            raise

        result = self.owner.revoke_pro()
        if not result:
            logger.warning(f"PRO flag could not be persisted as revoked: {result.error}")

        self.store.append_event("canceled_subscription", {
            "reason": self.reason.value,
            "accepted_offer": False,
        })
        self._close(ChurnOutcome.CANCELED)

        if self.on_canceled:
            self.on_canceled(subscription)
        return subscription

    def abandon(self):
        """Modal closed without choosing an exit. The record is left as is."""
        if self.is_open:
            self._close(ChurnOutcome.ABANDONED)

    def _close(self, outcome: ChurnOutcome):
        self.outcome = outcome
        self.step = ChurnStep.CLOSED
