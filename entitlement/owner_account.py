"""
Owning entity (the company account) as seen by the entitlement engine.

The company profile is a blob owned by the settings screens. The engine
only ever touches ``isPro`` (revoked when a cancellation is confirmed) and
reads ``planTier``/``trialEndsAt`` for the plan view. Every other key is
written back untouched.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol

from entitlement.models import PlanType, parse_timestamp
from entitlement.storage import EntitlementStore, SaveResult, COMPANY_KEY

logger = logging.getLogger(__name__)


class OwnerAccount(Protocol):
    """What the churn flow needs from the owning entity"""

    def revoke_pro(self) -> SaveResult:
        ...


@dataclass
class CompanyPlan:
    """Plan view of the company account"""
    plan_tier: PlanType
    trial_ends_at: Optional[datetime]
    is_trial_active: bool
    trial_days_remaining: int
    is_pro: bool

    @classmethod
    def from_company(cls, company: dict, now: datetime) -> 'CompanyPlan':
        try:
            tier = PlanType(company.get('planTier') or PlanType.FREE.value)
        except ValueError:
            tier = PlanType.FREE

        try:
            trial_end = parse_timestamp(company.get('trialEndsAt'))
        except ValueError:
            trial_end = None

        is_trial_active = trial_end is not None and trial_end > now
        days_remaining = 0
        if trial_end is not None:
            days_remaining = max(0, math.ceil((trial_end - now) / timedelta(days=1)))

        return cls(
            plan_tier=tier,
            trial_ends_at=trial_end,
            is_trial_active=is_trial_active,
            trial_days_remaining=days_remaining,
            is_pro=tier in (PlanType.PRO, PlanType.PREMIUM) or is_trial_active,
        )


class StoredOwnerAccount:
    """Company blob kept in the same store as the subscription record"""

    def __init__(self, store: EntitlementStore):
        self.store = store

    def load(self) -> dict:
        company = self.store.read_document(COMPANY_KEY, None)
        if not isinstance(company, dict):
            return {'isPro': False, 'planTier': PlanType.FREE.value}

        company = dict(company)
        # Older profiles only carry the boolean flag
        if not company.get('planTier'):
            company['planTier'] = PlanType.PRO.value if company.get('isPro') else PlanType.FREE.value
        company.setdefault('isPro', company['planTier'] != PlanType.FREE.value)
        return company

    def save(self, company: dict) -> SaveResult:
        return self.store.write_document(COMPANY_KEY, company)

    def revoke_pro(self) -> SaveResult:
        """Drop paid access immediately; the plan tier itself is left to billing"""
        company = self.load()
        company['isPro'] = False
        result = self.save(company)
        if result.ok:
            logger.info("Company PRO access revoked")
        return result

    def plan(self, now: datetime) -> CompanyPlan:
        return CompanyPlan.from_company(self.load(), now)
