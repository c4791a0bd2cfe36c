"""Subscription and entitlement API schemas"""

from datetime import datetime
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, ConfigDict, Field

from entitlement.models import PlanType, SubscriptionStatus, ChurnReason
from entitlement.device_guard import DeviceClass, RouteAccess


class SubscriptionRecord(BaseModel):
    """
    The persisted subscription record, field for field.

    Keys the engine does not know about are accepted and echoed back so a
    full save never drops collaborator-owned data.
    """
    model_config = ConfigDict(extra="allow")

    planType: PlanType = PlanType.FREE
    subscriptionStatus: SubscriptionStatus = SubscriptionStatus.INACTIVE
    trialStartDate: Optional[datetime] = None
    trialEndDate: Optional[datetime] = None
    subscriptionStart: Optional[datetime] = None
    subscriptionEnd: Optional[datetime] = None
    lastActiveDate: Optional[datetime] = None
    firstUseDate: Optional[datetime] = None
    intentUpgradeFlag: bool = False
    churnReason: Optional[str] = None
    onboardingCompleted: bool = False
    onboardingStep: int = Field(default=0, ge=0)
    quotesCreated: int = Field(default=0, ge=0)
    daysUsed: int = Field(default=0, ge=0)


class SaveResponse(BaseModel):
    """Result of a full-record save"""
    saved: bool
    error: Optional[str] = None
    subscription: SubscriptionRecord


class TrialStatusResponse(BaseModel):
    """Trial predicate and countdown"""
    status: SubscriptionStatus
    expired: bool
    days_remaining: int
    trial_end_date: Optional[datetime] = None


class AccessCheckRequest(BaseModel):
    """Gate a feature against a minimum tier"""
    feature: str
    min_tier: str = PlanType.PRO.value


class AccessCheckResponse(BaseModel):
    allowed: bool
    feature: str
    required_tier: str
    effective_tier: PlanType
    show_upgrade_prompt: bool = False
    upgrade_message: Optional[str] = None


class EventRequest(BaseModel):
    event: str = Field(min_length=1)
    metadata: Optional[Dict[str, Any]] = None


class EventResponse(BaseModel):
    recorded: bool


class OnboardingMessageResponse(BaseModel):
    message: Optional[str] = None
    is_trial_warning: bool = False


class ChurnReasonRequest(BaseModel):
    reason: ChurnReason


class RetentionOfferResponse(BaseModel):
    """The offer shown after a reason is captured"""
    offer_id: str
    discount_percent: int
    duration_months: int
    step: str


class ChurnOutcomeResponse(BaseModel):
    outcome: str
    subscription: SubscriptionRecord


class DeviceSessionModel(BaseModel):
    device_id: str
    device_type: DeviceClass
    created_at: datetime
    last_active_at: datetime
    is_active: bool = True
    device_name: str = "Device"


class DeviceAccessRequest(BaseModel):
    """
    Device registry snapshot from the identity collaborator.

    ``device_type`` falls back to detection from ``user_agent``.
    """
    device_id: str
    device_type: Optional[DeviceClass] = None
    user_agent: str = ""
    plan_tier: PlanType = PlanType.FREE
    sessions: List[DeviceSessionModel] = Field(default_factory=list)
    max_desktop_devices: Optional[int] = Field(default=None, ge=0)
    max_mobile_devices: Optional[int] = Field(default=None, ge=0)
    is_master_admin: bool = False


class DeviceCounts(BaseModel):
    desktop: int
    mobile: int


class DeviceDecisionModel(BaseModel):
    allowed: bool
    error: Optional[str] = None
    deviceType: DeviceClass
    currentCount: DeviceCounts
    limits: DeviceCounts


class DeviceAccessResponse(BaseModel):
    access: RouteAccess
    decision: DeviceDecisionModel


class UpgradePromptResponse(BaseModel):
    """State of the upgrade modal after an exit"""
    visible: bool
    feature: Optional[str] = None
    required_tier: Optional[str] = None
