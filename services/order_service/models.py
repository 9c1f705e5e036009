from sqlalchemy import JSON, Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from shared.config.database import Base

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(40), unique=True, nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    shipping_address = Column(JSON, nullable=False)
    billing_address = Column(JSON, nullable=False)
    payment_method = Column(String, nullable=False)
    payment_id = Column(String, nullable=True) # gateway transaction id

    # Money fields are frozen at creation; total = subtotal + tax + shipping - discount
    subtotal = Column(Float, nullable=False)
    tax_amount = Column(Float, nullable=False, default=0)
    shipping_amount = Column(Float, nullable=False, default=0)
    discount_amount = Column(Float, nullable=False, default=0)
    total_amount = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")

    coupon_code = Column(String(20), nullable=True)
    coupon_discount_type = Column(String, nullable=True)
    coupon_discount_value = Column(Float, nullable=True)

    order_status = Column(String, nullable=False, default="pending", index=True)
    payment_status = Column(String, nullable=False, default="pending", index=True)

    notes = Column(String(1000), nullable=True)
    tracking_number = Column(String, nullable=True)
    shipping_carrier = Column(String, nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(String, nullable=True)

    items = relationship("OrderItem", lazy="selectin", order_by="OrderItem.id")
    status_history = relationship("OrderStatusHistory", lazy="selectin", order_by="OrderStatusHistory.id")
    payment_history = relationship("PaymentStatusHistory", lazy="selectin", order_by="PaymentStatusHistory.id")

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def coupon(self) -> dict | None:
        if not self.coupon_code:
            return None
        return {
            "code": self.coupon_code,
            "discount_type": self.coupon_discount_type,
            "discount_value": self.coupon_discount_value,
        }


class OrderItem(Base):
    """Line item snapshot. Never updated after the order is written."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    sku = Column(String(64), nullable=True)
    price = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False)
    category_id = Column(Integer, nullable=True)

    @property
    def line_total(self) -> float:
        return self.price * self.quantity


class OrderStatusHistory(Base):
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    status = Column(String, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    actor = Column(String, nullable=False)
    note = Column(String(1000), nullable=True)


class PaymentStatusHistory(Base):
    __tablename__ = "payment_status_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    status = Column(String, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    actor = Column(String, nullable=False)
    note = Column(String(1000), nullable=True)
