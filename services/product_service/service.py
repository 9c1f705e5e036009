from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import InvalidError, NotFoundError
from services.realtime_service.bus import EventBus
from services.realtime_service.events import publish_stock_change
from .ledger import StockLedger
from .models import Product
from .repository import ProductRepository
from .schemas import ProductCreate, StockSnapshot

class ProductService:

    @staticmethod
    async def create_product(db: AsyncSession, data: ProductCreate):
        product = Product(**data.model_dump())
        product.sku = product.sku.strip().upper()
        if await ProductRepository.get_product_by_sku(db, product.sku):
            raise InvalidError(f"Product SKU {product.sku} already exists")
        return await ProductRepository.create_product(db, product)

    @staticmethod
    async def list_products(db: AsyncSession, active_only: bool = True):
        return await ProductRepository.get_all_products(db, active_only=active_only)

    @staticmethod
    async def get_product_by_id(db: AsyncSession, product_id: int):
        product = await ProductRepository.get_product_by_id(db, product_id)
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    @staticmethod
    async def restock(db: AsyncSession, bus: EventBus, product_id: int, quantity: int):
        mutation = await StockLedger.restock(db, product_id, quantity)
        publish_stock_change(bus, mutation)
        return mutation

    @staticmethod
    async def stock_snapshots(db: AsyncSession, product_ids: list[int]) -> list[StockSnapshot]:
        """Current stock for products a client just subscribed to."""
        products = await ProductRepository.get_products_by_ids(db, product_ids)
        return [
            StockSnapshot(
                productId=p.id,
                name=p.name,
                stock=p.stock,
                isInStock=p.is_in_stock(),
                lowStock=p.stock <= p.low_stock_threshold,
                trackQuantity=p.track_quantity,
                allowBackorder=p.allow_backorder,
            )
            for p in products
        ]
