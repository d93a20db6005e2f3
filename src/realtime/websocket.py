from fastapi import WebSocket, WebSocketDisconnect
from typing import Dict, List
import json
import asyncio
import logging
from datetime import datetime

from src.realtime.feed import ChangeFeed, ChangeEvent, Subscription, change_feed

logger = logging.getLogger(__name__)

SUBSCRIBABLE_TABLES = {"tickets", "crowd_data", "alerts", "*"}

class WebSocketManager:
    """Manager for WebSocket connections subscribed to the change feed"""

    def __init__(self, feed: ChangeFeed):
        self.feed = feed
        self.active_connections: List[WebSocket] = []
        self.subscriptions: Dict[WebSocket, List[Subscription]] = {}
        self.queues: Dict[WebSocket, asyncio.Queue] = {}

    async def connect(self, websocket: WebSocket):
        """Accept new WebSocket connection"""
        await websocket.accept()
        self.active_connections.append(websocket)
        self.subscriptions[websocket] = []
        self.queues[websocket] = asyncio.Queue()

    def disconnect(self, websocket: WebSocket):
        """Remove WebSocket connection and drop its feed subscriptions"""
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
        for subscription in self.subscriptions.pop(websocket, []):
            subscription.unsubscribe()
        self.queues.pop(websocket, None)

    async def subscribe(self, websocket: WebSocket, table: str, event: str):
        """Subscribe WebSocket to changes on a table"""
        if table not in SUBSCRIBABLE_TABLES:
            await self.send_personal_message(websocket, {
                "type": "error",
                "message": f"Unknown table: {table}",
                "timestamp": datetime.now().isoformat()
            })
            return

        loop = asyncio.get_running_loop()
        queue = self.queues[websocket]

        def forward(change: ChangeEvent):
            # Publishers may run in a worker thread
            loop.call_soon_threadsafe(queue.put_nowait, change)

        subscription = self.feed.subscribe(table, event, forward)
        self.subscriptions[websocket].append(subscription)

        await self.send_personal_message(websocket, {
            "type": "subscription_confirmed",
            "table": table,
            "event": subscription.event,
            "timestamp": datetime.now().isoformat()
        })

    async def send_personal_message(self, websocket: WebSocket, message: dict):
        """Send message to specific WebSocket"""
        try:
            await websocket.send_text(json.dumps(message, default=str))
        except (WebSocketDisconnect, RuntimeError):
            # Connection might be closed
            self.disconnect(websocket)

    async def pump(self, websocket: WebSocket):
        """Forward queued change events to the client until it disconnects"""
        queue = self.queues.get(websocket)
        while queue is not None and websocket in self.active_connections:
            change = await queue.get()
            await self.send_personal_message(websocket, change.to_message())

# Global WebSocket manager instance
ws_manager = WebSocketManager(change_feed)

async def websocket_endpoint(websocket: WebSocket):
    """Change-feed endpoint: clients send {"type": "subscribe", "table": ..., "event": ...}"""
    await ws_manager.connect(websocket)
    pump_task = asyncio.create_task(ws_manager.pump(websocket))

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                # Invalid JSON, ignore
                continue
            if not isinstance(message, dict):
                continue

            if message.get("type") == "subscribe":
                await ws_manager.subscribe(
                    websocket,
                    message.get("table", "*"),
                    message.get("event", "*")
                )

            elif message.get("type") == "ping":
                await ws_manager.send_personal_message(websocket, {
                    "type": "pong",
                    "timestamp": datetime.now().isoformat()
                })

    except WebSocketDisconnect:
        logger.debug("Change feed client disconnected")
    finally:
        pump_task.cancel()
        ws_manager.disconnect(websocket)
