from typing import Optional, Any

class SarafanError(Exception):
    """
    Base exception for the Sarafan bot.
    """
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500, details: Optional[Any] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)

class ResourceNotFoundError(SarafanError):
    """
    Raised when a requested resource is not found.
    """
    def __init__(self, message: str = "Resource not found", details: Optional[Any] = None):
        super().__init__(message, code="NOT_FOUND", status_code=404, details=details)

class OrderNotFoundError(ResourceNotFoundError):
    """
    Raised when an order ID does not exist. Callers should not retry.
    """
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}", details={"order_id": order_id})

class ConsultationExistsError(SarafanError):
    """
    Raised when a client already has an order that is not complete or upgraded.
    """
    def __init__(self, client_id: int):
        self.client_id = client_id
        super().__init__(
            f"Client {client_id} already has an active consultation",
            code="CONSULTATION_EXISTS",
            status_code=409,
            details={"client_id": client_id}
        )

class AlreadyClaimedError(SarafanError):
    """
    Raised when an order has been taken by someone else or has left the 'new' status.
    """
    def __init__(self, order_id: str, status: Optional[str] = None):
        self.order_id = order_id
        self.status = status
        super().__init__(
            f"Order {order_id} is already taken or finished",
            code="ALREADY_CLAIMED",
            status_code=409,
            details={"order_id": order_id, "status": status}
        )

class InvalidTransitionError(SarafanError):
    """
    Raised when a status change is not allowed from the stored status.
    """
    def __init__(self, order_id: str, current: Optional[str], target: str):
        self.order_id = order_id
        super().__init__(
            f"Order {order_id} cannot move from {current} to {target}",
            code="INVALID_TRANSITION",
            status_code=409,
            details={"order_id": order_id, "current": current, "target": target}
        )

class UpgradeExistsError(SarafanError):
    """
    Raised when a full consultation was already recorded after the same
    predecessor order. Callers re-read it instead of retrying.
    """
    def __init__(self, client_id: int, upgrade_of: str):
        self.client_id = client_id
        self.upgrade_of = upgrade_of
        super().__init__(
            f"Full consultation already recorded for client {client_id}",
            code="UPGRADE_EXISTS",
            status_code=409,
            details={"client_id": client_id, "upgrade_of": upgrade_of}
        )

class DuplicateOrderIdError(SarafanError):
    """
    Raised by the store when a generated order ID is already taken.
    """
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order ID collision: {order_id}", code="DUPLICATE_ID", status_code=500)

class TransientStoreError(SarafanError):
    """
    Raised when the store cannot be reached or does not answer in time.
    """
    def __init__(self, message: str = "Store unavailable", details: Optional[Any] = None):
        super().__init__(message, code="STORE_UNAVAILABLE", status_code=503, details=details)

class AuthenticationError(SarafanError):
    """
    Raised when authentication fails.
    """
    def __init__(self, message: str = "Authentication failed", details: Optional[Any] = None):
        super().__init__(message, code="AUTHENTICATION_FAILED", status_code=401, details=details)

class NotificationSendError(SarafanError):
    """
    Raised when the chat transport fails to send or edit a message.
    Never used to roll back an already committed state change.
    """
    def __init__(self, message: str = "Notification failed", details: Optional[Any] = None):
        super().__init__(message, code="NOTIFICATION_FAILED", status_code=502, details=details)
