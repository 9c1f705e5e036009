"""
Coupon Engine: decides whether a coupon applies and how much it takes off.

Pure functions over a coupon record and the order being priced; no I/O and
no mutation. The caller supplies `now` and the user's prior order count.

Order of checks: coupon validity, user eligibility, item scope, minimum
order, then the discount itself (capped at maximum_discount_amount and at
the eligible amount). A coupon restricted to certain products/categories
is ineligible when none of the order's items fall inside the restriction.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable

from shared.errors import InvalidCouponError

PERCENTAGE = "percentage"
FIXED = "fixed"
DISCOUNT_TYPES = (PERCENTAGE, FIXED)


class CouponOutcome(str, Enum):
    ELIGIBLE = "eligible"
    INELIGIBLE = "ineligible"
    BELOW_MINIMUM_ORDER = "below_minimum_order"


# Ineligibility reasons
INACTIVE = "inactive"
NOT_STARTED = "not_started"
EXPIRED = "expired"
USAGE_LIMIT_REACHED = "usage_limit_reached"
USER_NOT_ALLOWED = "user_not_allowed"
USER_LIMIT_REACHED = "user_limit_reached"
FIRST_TIME_ONLY = "first_time_only"
NO_ELIGIBLE_ITEMS = "no_eligible_items"

_MESSAGES = {
    INACTIVE: "Coupon is inactive",
    NOT_STARTED: "Coupon is not valid yet",
    EXPIRED: "Coupon has expired",
    USAGE_LIMIT_REACHED: "Coupon usage limit has been reached",
    USER_NOT_ALLOWED: "Coupon is not available for this account",
    USER_LIMIT_REACHED: "You have already used this coupon the maximum number of times",
    FIRST_TIME_ONLY: "Coupon is only valid on a first order",
    NO_ELIGIBLE_ITEMS: "No items in the order qualify for this coupon",
}


@dataclass(frozen=True)
class PricedItem:
    product_id: int
    price: float
    quantity: int
    category_id: int | None = None

    @property
    def line_total(self) -> float:
        return self.price * self.quantity


@dataclass(frozen=True)
class EligibilityResult:
    code: str
    outcome: CouponOutcome
    discount_amount: float = 0.0
    eligible_amount: float = 0.0
    reason: str | None = None
    message: str | None = None

    @property
    def eligible(self) -> bool:
        return self.outcome is CouponOutcome.ELIGIBLE

    def raise_for_outcome(self):
        """Turn a rejection into InvalidCouponError; no-op when eligible."""
        if not self.eligible:
            raise InvalidCouponError(self.code, self.reason, self.message)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything stored is UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _ineligible(coupon, reason: str) -> EligibilityResult:
    return EligibilityResult(
        code=coupon.code,
        outcome=CouponOutcome.INELIGIBLE,
        reason=reason,
        message=_MESSAGES[reason],
    )


def validity_failure(coupon, now: datetime) -> str | None:
    if not coupon.is_active:
        return INACTIVE
    now = _as_utc(now)
    if _as_utc(coupon.start_date) > now:
        return NOT_STARTED
    if _as_utc(coupon.end_date) < now:
        return EXPIRED
    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        return USAGE_LIMIT_REACHED
    return None


def user_usage_count(coupon, user_id: int) -> int:
    return sum(1 for usage in coupon.usages if usage.user_id == user_id)


def user_failure(coupon, user_id: int, prior_orders: int = 0) -> str | None:
    allowed = coupon.applicable_users or []
    if allowed and user_id not in allowed:
        return USER_NOT_ALLOWED
    if coupon.usage_limit_per_user is not None and user_usage_count(coupon, user_id) >= coupon.usage_limit_per_user:
        return USER_LIMIT_REACHED
    if coupon.first_time_customers_only and prior_orders > 0:
        return FIRST_TIME_ONLY
    return None


def has_scope(coupon) -> bool:
    return bool(
        coupon.applicable_products
        or coupon.applicable_categories
        or coupon.excluded_products
        or coupon.excluded_categories
    )


def is_item_eligible(coupon, item) -> bool:
    excluded_products = coupon.excluded_products or []
    excluded_categories = coupon.excluded_categories or []
    if item.product_id in excluded_products:
        return False
    if item.category_id is not None and item.category_id in excluded_categories:
        return False

    products = coupon.applicable_products or []
    categories = coupon.applicable_categories or []
    if not products and not categories:
        return True
    return item.product_id in products or (item.category_id is not None and item.category_id in categories)


def eligible_amount(coupon, order_amount: float, items: Iterable) -> float:
    """The part of the order the discount is computed against."""
    if not has_scope(coupon):
        return order_amount
    return round(sum(item.price * item.quantity for item in items if is_item_eligible(coupon, item)), 2)


def compute_discount(coupon, amount: float) -> float:
    if coupon.discount_type == PERCENTAGE:
        discount = amount * coupon.discount_value / 100
    else:
        discount = coupon.discount_value

    if coupon.maximum_discount_amount is not None:
        discount = min(discount, coupon.maximum_discount_amount)

    return round(max(0.0, min(discount, amount)), 2)


def evaluate(coupon, user_id: int, order_amount: float, items: Iterable = (), now: datetime | None = None,
             prior_orders: int = 0) -> EligibilityResult:
    now = now or datetime.now(timezone.utc)
    items = list(items)

    reason = validity_failure(coupon, now) or user_failure(coupon, user_id, prior_orders)
    if reason:
        return _ineligible(coupon, reason)

    amount = eligible_amount(coupon, order_amount, items)
    if has_scope(coupon) and amount <= 0:
        return _ineligible(coupon, NO_ELIGIBLE_ITEMS)

    if order_amount < coupon.minimum_order_amount:
        return EligibilityResult(
            code=coupon.code,
            outcome=CouponOutcome.BELOW_MINIMUM_ORDER,
            eligible_amount=amount,
            reason=CouponOutcome.BELOW_MINIMUM_ORDER.value,
            message=f"Minimum order amount of ${coupon.minimum_order_amount:.2f} required",
        )

    return EligibilityResult(
        code=coupon.code,
        outcome=CouponOutcome.ELIGIBLE,
        discount_amount=compute_discount(coupon, amount),
        eligible_amount=amount,
    )
