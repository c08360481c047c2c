class ServiceError(Exception):
    status = 400

    def __init__(self, code="SERVICE_ERROR", message="Service error", details=None, status=None):
        self.code = code
        self.message = message
        self.details = details or {}
        if status is not None:
            self.status = status
        super().__init__(message)


class ValidationError(ServiceError):
    status = 422

    def __init__(self, message="Invalid input", fields=None):
        super().__init__("VALIDATION_ERROR", message, {"fields": fields or {}})


class NotFound(ServiceError):
    status = 404

    def __init__(self, message="Resource not found", details=None):
        super().__init__("NOT_FOUND", message, details)


class Forbidden(ServiceError):
    status = 403

    def __init__(self, message="You do not have access to this resource", details=None):
        super().__init__("FORBIDDEN", message, details)


class InvalidTransition(ServiceError):
    status = 409

    def __init__(self, current, requested, message=None):
        super().__init__(
            "INVALID_TRANSITION",
            message or f"Cannot move booking from {current} to {requested}",
            {"current_status": current, "requested_status": requested},
        )


class InvalidAmount(ServiceError):
    status = 400

    def __init__(self, amount, message="Amount must be positive"):
        super().__init__("INVALID_AMOUNT", message, {"amount": str(amount)})


class InsufficientBalance(ServiceError):
    """Wallet cannot cover a platform fee; carries both figures for display."""

    status = 400

    def __init__(self, required, current):
        self.required = required
        self.current = current
        super().__init__(
            "INSUFFICIENT_BALANCE",
            f"Insufficient wallet balance. Need {required:.2f} but have {current:.2f}. "
            "Please top up your wallet first.",
            {"required": float(required), "current": float(current)},
        )


class Conflict(ServiceError):
    status = 409

    def __init__(self, message="Conflicting resource state", details=None):
        super().__init__("CONFLICT", message, details)
