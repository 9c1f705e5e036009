from fastapi import Depends

from services.realtime_service.bus import EventBus
from services.realtime_service.dependencies import get_event_bus
from .pipeline import OrderPipeline


def get_order_pipeline(bus: EventBus = Depends(get_event_bus)) -> OrderPipeline:
    return OrderPipeline(bus)
