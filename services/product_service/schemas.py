from pydantic import BaseModel, Field


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    sku: str = Field(min_length=1, max_length=64)
    price: float = Field(ge=0)
    stock: int = Field(default=0, ge=0)
    low_stock_threshold: int = Field(default=10, ge=0)
    track_quantity: bool = True
    allow_backorder: bool = False
    is_active: bool = True
    category_id: int | None = None


class StockUpdate(BaseModel):
    quantity: int = Field(ge=1)


class ProductResponse(BaseModel):
    id: int
    name: str
    sku: str
    price: float
    stock: int
    low_stock_threshold: int
    track_quantity: bool
    allow_backorder: bool
    is_active: bool
    category_id: int | None
    total_sales: int

    class Config:
        from_attributes = True


class StockSnapshot(BaseModel):
    productId: int
    name: str
    stock: int
    isInStock: bool
    lowStock: bool
    trackQuantity: bool
    allowBackorder: bool
