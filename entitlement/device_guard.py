"""
Device Guard - per-plan device-count limits.

The registry of device sessions lives with the identity collaborator; this
module holds the policy that turns those sessions into the decision object
route protection consumes:

    {allowed, error, deviceType, currentCount: {desktop, mobile},
     limits: {desktop, mobile}}

Device-limit denial is independent of tier gating: a premium account over
its phone limit is still blocked, a free account within limits is not.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, List, Iterable

from entitlement.models import PlanType

logger = logging.getLogger(__name__)


ACTIVITY_WINDOW_DAYS = 30

_MOBILE_UA = re.compile(r"mobile|android|iphone|ipad|ipod|blackberry|iemobile|opera mini", re.IGNORECASE)


class DeviceClass(str, Enum):
    DESKTOP = "desktop"
    MOBILE = "mobile"


@dataclass(frozen=True)
class DeviceLimits:
    desktop: int
    mobile: int

    def for_class(self, device_type: DeviceClass) -> int:
        return self.desktop if device_type == DeviceClass.DESKTOP else self.mobile

    def to_dict(self) -> dict:
        return {'desktop': self.desktop, 'mobile': self.mobile}


PLAN_DEVICE_LIMITS = {
    PlanType.FREE: DeviceLimits(desktop=1, mobile=1),
    PlanType.PRO: DeviceLimits(desktop=1, mobile=2),
    PlanType.PREMIUM: DeviceLimits(desktop=1, mobile=9),
}


def limits_for_plan(
    plan_tier,
    max_desktop_devices: Optional[int] = None,
    max_mobile_devices: Optional[int] = None,
) -> DeviceLimits:
    """Plan limits with per-company overrides applied. Unknown plans get the free limits."""
    try:
        base = PLAN_DEVICE_LIMITS.get(PlanType(plan_tier), PLAN_DEVICE_LIMITS[PlanType.FREE])
    except ValueError:
        base = PLAN_DEVICE_LIMITS[PlanType.FREE]

    return DeviceLimits(
        desktop=max_desktop_devices if max_desktop_devices is not None else base.desktop,
        mobile=max_mobile_devices if max_mobile_devices is not None else base.mobile,
    )


def detect_device_type(user_agent: str) -> DeviceClass:
    if user_agent and _MOBILE_UA.search(user_agent):
        return DeviceClass.MOBILE
    return DeviceClass.DESKTOP


def device_name(user_agent: str) -> str:
    """Display name for a device from its user agent"""
    ua = user_agent or ""
    if "iPhone" in ua:
        return "iPhone"
    if "iPad" in ua:
        return "iPad"
    if "Android" in ua:
        return "Android"
    if "Windows" in ua:
        return "Windows PC"
    if "Mac" in ua:
        return "Mac"
    if "Linux" in ua:
        return "Linux PC"
    return "Device"


@dataclass
class DeviceSession:
    """One registered device of a company"""
    device_id: str
    device_type: DeviceClass
    created_at: datetime
    last_active_at: datetime
    is_active: bool = True
    device_name: str = "Device"


@dataclass
class DeviceDecision:
    """Allow/deny result consumed by route protection"""
    allowed: bool
    device_type: DeviceClass
    current_count: dict = field(default_factory=lambda: {'desktop': 0, 'mobile': 0})
    limits: DeviceLimits = field(default_factory=lambda: PLAN_DEVICE_LIMITS[PlanType.FREE])
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'allowed': self.allowed,
            'error': self.error,
            'deviceType': self.device_type.value,
            'currentCount': dict(self.current_count),
            'limits': self.limits.to_dict(),
        }


def _limit_message(device_type: DeviceClass, limit: int, plan_tier) -> str:
    plan_label = (plan_tier.value if isinstance(plan_tier, PlanType) else str(plan_tier)).upper()
    noun = "computer(s)" if device_type == DeviceClass.DESKTOP else "phone(s)"
    return f"Limit of {limit} {noun} reached for the {plan_label} plan. Sign out of another device to continue."


def evaluate_device_access(
    device_id: str,
    device_type: DeviceClass,
    plan_tier,
    sessions: Iterable[DeviceSession],
    now: datetime,
    max_desktop_devices: Optional[int] = None,
    max_mobile_devices: Optional[int] = None,
    is_master_admin: bool = False,
) -> DeviceDecision:
    """
    Decide whether this device may use the account.

    Only active sessions seen in the last ACTIVITY_WINDOW_DAYS count. The
    current device counts as registered now if it is not in ``sessions``.
    When its class is over the limit, the oldest ``limit`` devices of that
    class (by registration) keep access and the rest are denied.

    Any error while evaluating allows access rather than locking users out.
    """
    device_type = DeviceClass(device_type)
    limits = limits_for_plan(plan_tier, max_desktop_devices, max_mobile_devices)

    if is_master_admin:
        return DeviceDecision(allowed=True, device_type=device_type, limits=limits)

    try:
        window_start = now - timedelta(days=ACTIVITY_WINDOW_DAYS)
        active: List[DeviceSession] = [
            s for s in sessions if s.is_active and s.last_active_at >= window_start
        ]
        if not any(s.device_id == device_id for s in active):
            active.append(DeviceSession(
                device_id=device_id,
                device_type=device_type,
                created_at=now,
                last_active_at=now,
            ))

        counts = {
            DeviceClass.DESKTOP.value: sum(1 for s in active if s.device_type == DeviceClass.DESKTOP),
            DeviceClass.MOBILE.value: sum(1 for s in active if s.device_type == DeviceClass.MOBILE),
        }

        type_count = counts[device_type.value]
        type_limit = limits.for_class(device_type)

        if type_count <= type_limit:
            return DeviceDecision(allowed=True, device_type=device_type, current_count=counts, limits=limits)

        same_type = sorted((s for s in active if s.device_type == device_type), key=lambda s: s.created_at)
        allowed_ids = {s.device_id for s in same_type[:type_limit]}

        if device_id in allowed_ids:
            return DeviceDecision(allowed=True, device_type=device_type, current_count=counts, limits=limits)

        error = _limit_message(device_type, type_limit, plan_tier)
        logger.warning(f"Device {device_id} denied: {error}")
        return DeviceDecision(
            allowed=False,
            device_type=device_type,
            current_count=counts,
            limits=limits,
            error=error,
        )

    except Exception as e:
        logger.error(f"Device guard error, allowing access: {e}")
        return DeviceDecision(allowed=True, device_type=device_type, limits=limits)


# ============================================================================
# Route protection
# ============================================================================

class RouteAccess(str, Enum):
    ALLOW = "allow"
    LOGIN_REQUIRED = "login_required"
    DEVICE_LIMITED = "device_limited"


def check_route_access(
    has_session: bool,
    is_technician: bool,
    decision: Optional[DeviceDecision] = None,
) -> RouteAccess:
    """
    Gate a protected page.

    No session of either kind sends the user to login. An authenticated
    session on a device over the limit is blocked whatever the plan. A
    missing decision (guard still loading) does not block.
    """
    if not has_session and not is_technician:
        return RouteAccess.LOGIN_REQUIRED
    if has_session and decision is not None and not decision.allowed:
        return RouteAccess.DEVICE_LIMITED
    return RouteAccess.ALLOW
