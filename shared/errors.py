"""
Error taxonomy shared by every service.

Core components raise these; the order pipeline catches them at its boundary
and hands them back inside an OrderOutcome. Routers turn them into
HTTPException using `status_code`.
"""
from fastapi import HTTPException, status


class StoreError(Exception):
    kind = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}

    def to_http(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.to_dict())


class NotFoundError(StoreError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidError(StoreError):
    kind = "invalid"
    status_code = status.HTTP_400_BAD_REQUEST


class InsufficientStockError(StoreError):
    kind = "insufficient_stock"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, product_id: int, requested: int, product_name: str | None = None):
        label = product_name or f"product {product_id}"
        super().__init__(f"Insufficient stock for {label}")
        self.product_id = product_id
        self.requested = requested

    def to_dict(self) -> dict:
        return {**super().to_dict(), "product_id": self.product_id, "requested": self.requested}


class InvalidCouponError(StoreError):
    kind = "invalid_coupon"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, code: str, reason: str, message: str | None = None):
        super().__init__(message or f"Coupon {code} cannot be applied: {reason}")
        self.code = code
        self.reason = reason

    def to_dict(self) -> dict:
        return {**super().to_dict(), "code": self.code, "reason": self.reason}


class InvalidTransitionError(StoreError):
    kind = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, field: str, current: str, requested: str):
        super().__init__(f"Cannot transition {field} from {current} to {requested}")
        self.field = field
        self.current = current
        self.requested = requested

    def to_dict(self) -> dict:
        return {
            **super().to_dict(),
            "field": self.field,
            "current": self.current,
            "requested": self.requested,
        }


class InternalError(StoreError):
    kind = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
