from fastapi import Request, WebSocket

from .bus import EventBus


def get_event_bus(request: Request) -> EventBus:
    """The bus is wired once onto app.state by the composition root."""
    return request.app.state.event_bus


def get_ws_event_bus(websocket: WebSocket) -> EventBus:
    return websocket.app.state.event_bus
