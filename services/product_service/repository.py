from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import or_, select, update
from .models import Product

# Columns the ledger needs back from an atomic stock write
_STOCK_RETURNING = (
    Product.id,
    Product.name,
    Product.stock,
    Product.low_stock_threshold,
    Product.track_quantity,
    Product.allow_backorder,
)

class ProductRepository:

    @staticmethod
    async def create_product(db: AsyncSession, product: Product):
        db.add(product)
        await db.commit()
        await db.refresh(product)
        return product

    @staticmethod
    async def get_all_products(db: AsyncSession, active_only: bool = False):
        query = select(Product).order_by(Product.id)
        if active_only:
            query = query.where(Product.is_active.is_(True))
        result = await db.execute(query)
        return result.scalars().all()

    @staticmethod
    async def get_product_by_id(db: AsyncSession, product_id: int):
        result = await db.execute(
            select(Product).where(Product.id == product_id).execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def get_product_by_sku(db: AsyncSession, sku: str):
        result = await db.execute(select(Product).where(Product.sku == sku))
        return result.scalars().first()

    @staticmethod
    async def get_products_by_ids(db: AsyncSession, product_ids: list[int]):
        result = await db.execute(
            select(Product).where(Product.id.in_(product_ids)).execution_options(populate_existing=True)
        )
        return result.scalars().all()

    @staticmethod
    async def decrement_stock(db: AsyncSession, product_id: int, quantity: int):
        """
        Take `quantity` units in a single conditional UPDATE.

        Untracked and backorder products always take the write. Tracked ones
        only when stock >= quantity, evaluated by the database against the
        current row. Returns the RETURNING row, or None when no row matched
        (missing product or not enough stock).
        """
        stmt = (
            update(Product)
            .where(
                Product.id == product_id,
                or_(
                    Product.track_quantity.is_(False),
                    Product.allow_backorder.is_(True),
                    Product.stock >= quantity,
                ),
            )
            .values(
                stock=Product.stock - quantity,
                total_sales=Product.total_sales + quantity,
            )
            .returning(*_STOCK_RETURNING)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        row = result.first()
        await db.commit()
        return row

    @staticmethod
    async def increment_stock(db: AsyncSession, product_id: int, quantity: int, reverse_sale: bool = True):
        values = {"stock": Product.stock + quantity}
        if reverse_sale:
            values["total_sales"] = Product.total_sales - quantity
        stmt = (
            update(Product)
            .where(Product.id == product_id)
            .values(**values)
            .returning(*_STOCK_RETURNING)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        row = result.first()
        await db.commit()
        return row
