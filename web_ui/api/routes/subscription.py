"""
Subscription Routes - API endpoints for the entitlement engine

Every endpoint works on the single installation record. Lifecycle and churn
errors surface as 409 through the handlers registered in main.py.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request, status, Depends

from entitlement.churn import ChurnFlow, ChurnOutcome
from entitlement.device_guard import (
    DeviceSession,
    RouteAccess,
    check_route_access,
    detect_device_type,
    evaluate_device_access,
)
from entitlement.exceptions import ChurnFlowError
from entitlement.models import Subscription, parse_timestamp
from entitlement.onboarding import is_trial_warning
from entitlement.service import EntitlementService
from web_ui.api.dependencies import (
    SessionContext,
    get_open_churn_flow,
    get_service,
    get_session_context,
)
from web_ui.api.schemas.subscription_schemas import (
    AccessCheckRequest,
    AccessCheckResponse,
    ChurnOutcomeResponse,
    ChurnReasonRequest,
    DeviceAccessRequest,
    DeviceAccessResponse,
    EventRequest,
    EventResponse,
    OnboardingMessageResponse,
    RetentionOfferResponse,
    SaveResponse,
    SubscriptionRecord,
    TrialStatusResponse,
    UpgradePromptResponse,
)
from utils.logger import logger


router = APIRouter(prefix="/subscription", tags=["subscription"])


def _record(subscription: Subscription) -> SubscriptionRecord:
    return SubscriptionRecord.model_validate(subscription.to_dict())


# ========== Record ==========

@router.get("/", response_model=SubscriptionRecord)
async def get_subscription(service: EntitlementService = Depends(get_service)):
    """Current record (defaults when none is stored)"""
    return _record(service.get_subscription())


@router.put("/", response_model=SaveResponse)
async def save_subscription(
    record: SubscriptionRecord,
    service: EntitlementService = Depends(get_service),
):
    """
    Replace the whole record.

    A failed write is reported with ``saved: false``; the new value stays
    visible to this process until a later save succeeds.
    """
    try:
        subscription = Subscription.from_dict(record.model_dump())
    except (ValueError, TypeError) as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": "invalid_record", "message": str(e)},
        )

    result = service.save_subscription(subscription)
    return SaveResponse(saved=result.ok, error=result.error, subscription=_record(subscription))


# ========== Trial and usage ==========

@router.post("/trial", response_model=SubscriptionRecord)
async def start_trial(service: EntitlementService = Depends(get_service)):
    """Start the 7-day PRO trial"""
    return _record(service.start_trial())


@router.get("/trial", response_model=TrialStatusResponse)
async def get_trial_status(service: EntitlementService = Depends(get_service)):
    subscription = service.get_subscription()
    return TrialStatusResponse(
        status=subscription.subscription_status,
        expired=service.lifecycle.is_trial_expired(subscription),
        days_remaining=service.lifecycle.get_trial_days_remaining(subscription),
        trial_end_date=subscription.trial_end_date,
    )


@router.post("/activity", response_model=SubscriptionRecord)
async def record_activity(service: EntitlementService = Depends(get_service)):
    """Count today as a day of use (idempotent within a UTC day)"""
    return _record(service.update_last_active())


@router.post("/quotes", response_model=SubscriptionRecord)
async def record_quote(service: EntitlementService = Depends(get_service)):
    return _record(service.increment_quotes_created())


@router.get("/onboarding-message", response_model=OnboardingMessageResponse)
async def get_onboarding_message(service: EntitlementService = Depends(get_service)):
    subscription = service.get_subscription()
    return OnboardingMessageResponse(
        message=service.get_onboarding_message(),
        is_trial_warning=is_trial_warning(
            subscription.subscription_status,
            service.lifecycle.get_trial_days_remaining(subscription),
        ),
    )


# ========== Gating and events ==========

@router.post("/access", response_model=AccessCheckResponse)
async def check_access(
    body: AccessCheckRequest,
    service: EntitlementService = Depends(get_service),
):
    """Gate a feature; a denial raises the upgrade prompt and is logged as an event"""
    allowed = service.check_access(body.feature, body.min_tier)
    return AccessCheckResponse(
        allowed=allowed,
        feature=body.feature,
        required_tier=body.min_tier,
        effective_tier=service.effective_tier(),
        show_upgrade_prompt=not allowed,
        upgrade_message=None if allowed else service.gate.get_upgrade_message(body.feature, body.min_tier),
    )


@router.post("/upgrade/accept", response_model=UpgradePromptResponse)
async def accept_upgrade(service: EntitlementService = Depends(get_service)):
    """User chose to upgrade from the prompt"""
    service.gate.accept_upgrade()
    return UpgradePromptResponse(**vars(service.gate.prompt))


@router.post("/upgrade/dismiss", response_model=UpgradePromptResponse)
async def dismiss_upgrade(service: EntitlementService = Depends(get_service)):
    """User chose to stay on the current plan"""
    service.gate.dismiss_upgrade()
    return UpgradePromptResponse(**vars(service.gate.prompt))


@router.post("/events", response_model=EventResponse)
async def track_event(
    body: EventRequest,
    service: EntitlementService = Depends(get_service),
):
    return EventResponse(recorded=service.track_event(body.event, body.metadata))


# ========== Churn ==========

@router.post("/churn/reason", response_model=RetentionOfferResponse)
async def select_churn_reason(
    request: Request,
    body: ChurnReasonRequest,
    service: EntitlementService = Depends(get_service),
):
    """Open (or continue) the cancellation flow with a reason; returns the retention offer"""
    flow = get_open_churn_flow(request)
    if flow is None:
        flow = service.start_churn_flow()
        request.app.state.churn_flow = flow

    offer = flow.select_reason(body.reason)
    return RetentionOfferResponse(
        offer_id=offer.id,
        discount_percent=offer.discount_percent,
        duration_months=offer.duration_months,
        step=flow.step.value,
    )


def _require_flow(flow: Optional[ChurnFlow]) -> ChurnFlow:
    if flow is None:
        raise ChurnFlowError("No cancellation flow is in progress")
    return flow


@router.post("/churn/accept", response_model=ChurnOutcomeResponse)
async def accept_retention_offer(request: Request):
    flow = _require_flow(get_open_churn_flow(request))
    subscription = flow.accept_offer()
    return ChurnOutcomeResponse(outcome=flow.outcome.value, subscription=_record(subscription))


@router.post("/churn/confirm", response_model=ChurnOutcomeResponse)
async def confirm_cancellation(request: Request):
    flow = _require_flow(get_open_churn_flow(request))
    subscription = flow.confirm_cancel()
    return ChurnOutcomeResponse(outcome=flow.outcome.value, subscription=_record(subscription))


@router.post("/churn/close", response_model=ChurnOutcomeResponse)
async def close_churn_flow(
    request: Request,
    service: EntitlementService = Depends(get_service),
):
    """Modal dismissed; closing an already closed flow is a no-op"""
    flow = get_open_churn_flow(request)
    if flow is not None:
        flow.abandon()
    return ChurnOutcomeResponse(
        outcome=ChurnOutcome.ABANDONED.value,
        subscription=_record(service.get_subscription()),
    )


# ========== Devices ==========

@router.post("/device-access", response_model=DeviceAccessResponse)
async def check_device_access(
    body: DeviceAccessRequest,
    session: SessionContext = Depends(get_session_context),
    service: EntitlementService = Depends(get_service),
):
    """
    Route-protection decision for this device.

    401 without any session, 403 with the remediation text when the device
    is over its plan limit.
    """
    if check_route_access(session.has_session, session.is_technician) == RouteAccess.LOGIN_REQUIRED:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "login_required", "message": "Sign in to continue."},
        )

    sessions = [
        DeviceSession(
            device_id=s.device_id,
            device_type=s.device_type,
            created_at=parse_timestamp(s.created_at),
            last_active_at=parse_timestamp(s.last_active_at),
            is_active=s.is_active,
            device_name=s.device_name,
        )
        for s in body.sessions
    ]

    decision = evaluate_device_access(
        device_id=body.device_id,
        device_type=body.device_type or detect_device_type(body.user_agent),
        plan_tier=body.plan_tier,
        sessions=sessions,
        now=service.clock(),
        max_desktop_devices=body.max_desktop_devices,
        max_mobile_devices=body.max_mobile_devices,
        is_master_admin=body.is_master_admin,
    )

    access = check_route_access(session.has_session, session.is_technician, decision)
    if access == RouteAccess.DEVICE_LIMITED:
        logger.info(f"Device {body.device_id} blocked by device limit")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "device_limited", "message": decision.error, "decision": decision.to_dict()},
        )

    return DeviceAccessResponse(access=access, decision=decision.to_dict())
