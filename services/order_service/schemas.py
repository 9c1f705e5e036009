from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

PaymentMethod = Literal["credit_card", "debit_card", "paypal", "stripe", "cash_on_delivery"]


class Address(BaseModel):
    first_name: str
    last_name: str
    company: str | None = None
    address1: str
    address2: str | None = None
    city: str
    state: str
    zip_code: str
    country: str
    phone: str | None = None


class OrderItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(ge=1)


class OrderCreate(BaseModel):
    items: list[OrderItemCreate] = Field(min_length=1)
    shipping_address: Address
    billing_address: Address | None = None # defaults to the shipping address
    payment_method: PaymentMethod
    coupon_code: str | None = None
    notes: str | None = Field(default=None, max_length=1000)


class OrderStatusUpdate(BaseModel):
    order_status: str
    tracking_number: str | None = None
    shipping_carrier: str | None = None
    notes: str | None = None


class PaymentStatusUpdate(BaseModel):
    payment_status: str
    payment_id: str | None = None
    notes: str | None = None


class OrderItemResponse(BaseModel):
    product_id: int
    name: str
    sku: str | None
    price: float
    quantity: int

    class Config:
        from_attributes = True


class StatusEntryResponse(BaseModel):
    status: str
    timestamp: datetime
    actor: str
    note: str | None

    class Config:
        from_attributes = True


class AppliedCoupon(BaseModel):
    code: str
    discount_type: str
    discount_value: float


class OrderResponse(BaseModel):
    id: int
    order_number: str
    user_id: int
    created_at: datetime
    items: list[OrderItemResponse]
    shipping_address: dict
    billing_address: dict
    payment_method: str
    payment_id: str | None
    subtotal: float
    tax_amount: float
    shipping_amount: float
    discount_amount: float
    total_amount: float
    currency: str
    coupon: AppliedCoupon | None
    order_status: str
    payment_status: str
    notes: str | None
    tracking_number: str | None
    shipping_carrier: str | None
    delivered_at: datetime | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    status_history: list[StatusEntryResponse]
    payment_history: list[StatusEntryResponse]

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_orders: int
    has_next_page: bool
    has_prev_page: bool


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    pagination: Pagination
