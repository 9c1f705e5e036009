from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from shared.config.database import Base


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(20), unique=True, nullable=False, index=True) # stored upper-case
    name = Column(String(100), nullable=False)
    description = Column(String(500), nullable=True)
    discount_type = Column(String, nullable=False) # percentage, fixed
    discount_value = Column(Float, nullable=False)
    minimum_order_amount = Column(Float, nullable=False, default=0)
    maximum_discount_amount = Column(Float, nullable=True)
    usage_limit = Column(Integer, nullable=True)
    usage_limit_per_user = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    applicable_products = Column(JSON, nullable=False, default=list)
    applicable_categories = Column(JSON, nullable=False, default=list)
    excluded_products = Column(JSON, nullable=False, default=list)
    excluded_categories = Column(JSON, nullable=False, default=list)
    applicable_users = Column(JSON, nullable=False, default=list)
    first_time_customers_only = Column(Boolean, nullable=False, default=False)

    # Append-only; rows are written by CouponRepository.claim_usage only
    usages = relationship(
        "CouponUsage",
        back_populates="coupon",
        lazy="selectin",
        order_by="CouponUsage.id",
    )


class CouponUsage(Base):
    __tablename__ = "coupon_usages"

    id = Column(Integer, primary_key=True, index=True)
    coupon_id = Column(Integer, ForeignKey("coupons.id"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    order_id = Column(Integer, nullable=False)
    discount_amount = Column(Float, nullable=False)
    used_at = Column(DateTime(timezone=True), server_default=func.now())

    coupon = relationship("Coupon", back_populates="usages")
