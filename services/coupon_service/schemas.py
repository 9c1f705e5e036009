from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from .engine import DISCOUNT_TYPES


class CouponCreate(BaseModel):
    code: str = Field(min_length=3, max_length=20)
    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    discount_type: str
    discount_value: float = Field(ge=0)
    minimum_order_amount: float = Field(default=0, ge=0)
    maximum_discount_amount: float | None = Field(default=None, ge=0)
    usage_limit: int | None = Field(default=None, ge=1)
    usage_limit_per_user: int | None = Field(default=None, ge=1)
    is_active: bool = True
    start_date: datetime
    end_date: datetime
    applicable_products: list[int] = []
    applicable_categories: list[int] = []
    excluded_products: list[int] = []
    excluded_categories: list[int] = []
    applicable_users: list[int] = []
    first_time_customers_only: bool = False

    @field_validator("code")
    @classmethod
    def upper_code(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("discount_type")
    @classmethod
    def known_type(cls, value: str) -> str:
        if value not in DISCOUNT_TYPES:
            raise ValueError(f"discount_type must be one of {DISCOUNT_TYPES}")
        return value

    @model_validator(mode="after")
    def window_is_ordered(self):
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self


class CouponItem(BaseModel):
    product_id: int
    quantity: int = Field(ge=1)
    price: float | None = Field(default=None, ge=0)


class CouponValidateRequest(BaseModel):
    code: str
    order_amount: float = Field(default=0, ge=0)
    items: list[CouponItem] = []


class CouponSummary(BaseModel):
    code: str
    name: str
    discount_type: str
    discount_value: float
    minimum_order_amount: float = 0
    description: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None

    class Config:
        from_attributes = True


class CouponValidateResponse(BaseModel):
    coupon: CouponSummary
    discount_amount: float
    final_amount: float
