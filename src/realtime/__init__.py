"""
Real-time change notification

In-process replacement for the hosted change feed: writers publish row-level
INSERT/UPDATE events per table, and WebSocket clients subscribe by table name
and event type.

Key Components:
- feed.py: thread-safe publish/subscribe keyed by (table, event)
- websocket.py: WebSocket endpoint relaying feed events to subscribed clients
"""

from .feed import ChangeFeed, ChangeEvent, Subscription, change_feed
from .websocket import WebSocketManager, ws_manager, websocket_endpoint

__all__ = [
    "ChangeFeed",
    "ChangeEvent",
    "Subscription",
    "change_feed",
    "WebSocketManager",
    "ws_manager",
    "websocket_endpoint",
]
