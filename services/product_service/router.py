from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.errors import StoreError
from shared.security.dependencies import verify_internal_api_key
from services.realtime_service.bus import EventBus
from services.realtime_service.dependencies import get_event_bus
from .schemas import ProductCreate, ProductResponse, StockUpdate
from .service import ProductService

router = APIRouter(prefix="/products", tags=["Products"])
internal_router = APIRouter(
    prefix="/products",
    tags=["Products"],
    dependencies=[Depends(verify_internal_api_key)],
)


@router.get("/", response_model=list[ProductResponse])
async def list_products(db: AsyncSession = Depends(get_db)):
    return await ProductService.list_products(db)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    try:
        return await ProductService.get_product_by_id(db, product_id)
    except StoreError as e:
        raise e.to_http()


@internal_router.post("/", response_model=ProductResponse, status_code=201)
async def create_product(product: ProductCreate, db: AsyncSession = Depends(get_db)):
    try:
        return await ProductService.create_product(db, product)
    except StoreError as e:
        raise e.to_http()


@internal_router.post("/{product_id}/restock", response_model=ProductResponse)
async def restock(
    product_id: int,
    payload: StockUpdate,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
):
    try:
        await ProductService.restock(db, bus, product_id, payload.quantity)
        product = await ProductService.get_product_by_id(db, product_id)
        await db.refresh(product)
        return product
    except StoreError as e:
        raise e.to_http()
