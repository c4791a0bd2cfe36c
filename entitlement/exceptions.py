"""Errors raised by the entitlement engine"""


class EntitlementError(Exception):
    """Base class for entitlement engine errors"""


class InvalidTransitionError(EntitlementError):
    """Raised when a lifecycle action is not legal in the current status"""

    def __init__(self, status: str, action: str):
        self.status = status
        self.action = action
        super().__init__(f"Cannot apply '{action}' to a subscription in status '{status}'")


class ChurnFlowError(EntitlementError):
    """Raised when a churn step is invoked out of order or after the flow closed"""


class StorageQuotaExceeded(EntitlementError):
    """Raised by a storage backend that has run out of space"""
