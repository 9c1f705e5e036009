from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from shared.config.database import create_tables
from shared.observability import setup_observability
from shared.security import limiter

# IMPORTANT: import models so they register with Base
from services.product_service import models as product_models  # noqa: F401
from services.coupon_service import models as coupon_models  # noqa: F401
from services.order_service import models as order_models  # noqa: F401

from services.product_service.router import router as product_router, internal_router as product_internal_router
from services.coupon_service.router import router as coupon_router
from services.order_service.router import router as order_router
from services.realtime_service.bus import EventBus
from services.realtime_service.router import router as realtime_router


def create_app(event_bus: EventBus | None = None) -> FastAPI:
    app = FastAPI(title="Store Backend", version="1.0.0")

    # The one event bus for this process; handlers reach it through app.state
    app.state.event_bus = event_bus or EventBus()

    # --- OBSERVABILITY BOOTSTRAP ---
    setup_observability(app, "store_backend")

    # --- SECURITY SETUP ---
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    @app.get("/health", include_in_schema=False)
    async def health_check():
        return {"service": "store", "status": "running"}

    app.include_router(product_router)
    app.include_router(product_internal_router)
    app.include_router(coupon_router)
    app.include_router(order_router)
    app.include_router(realtime_router)

    @app.on_event("startup")
    async def startup_event():
        await create_tables()

    return app


app = create_app()
