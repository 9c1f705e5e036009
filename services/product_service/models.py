from sqlalchemy import Boolean, Column, Float, Integer, String
from shared.config.database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    sku = Column(String(64), unique=True, nullable=False)
    price = Column(Float, nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    low_stock_threshold = Column(Integer, nullable=False, default=10)
    track_quantity = Column(Boolean, nullable=False, default=True)
    allow_backorder = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    category_id = Column(Integer, nullable=True, index=True)
    total_sales = Column(Integer, nullable=False, default=0)

    def is_in_stock(self, quantity: int = 1) -> bool:
        if not self.track_quantity or self.allow_backorder:
            return True
        return self.stock >= quantity
