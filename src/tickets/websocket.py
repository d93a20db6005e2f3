from fastapi import WebSocket, WebSocketDisconnect, status
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
from typing import Callable, Dict, Optional, Set
import json
import asyncio
import logging
from datetime import datetime

from src.auth.service import UserService
from src.auth.utils import decode_token
from src.config import settings
from src.exceptions import DeviceError
from src.realtime.feed import ChangeFeed, change_feed
from src.tickets.scanner import CaptureDevice, DecodeCallback, ScanSession, Validator
from src.tickets.schemas import ScanSessionSnapshot, ValidationResult
from src.tickets.service import TicketService
from src.tickets.store import SQLAlchemyTicketStore

logger = logging.getLogger(__name__)

# Client replies that settle a pending camera command
REPLY_KINDS = {
    "camera_started": "camera_start",
    "camera_failed": "camera_start",
    "camera_stopped": "camera_stop",
}

class OperatorChannel:
    """WebSocket link to the operator's browser, which owns the camera and decoder"""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self._pending: Dict[str, asyncio.Future] = {}

    async def send(self, message: dict):
        message.setdefault("timestamp", datetime.now().isoformat())
        await self.websocket.send_text(json.dumps(message, default=str))

    async def command(self, kind: str, timeout: Optional[float] = None) -> dict:
        """Send a camera command and wait for the client's reply"""
        previous = self._pending.pop(kind, None)
        if previous and not previous.done():
            previous.cancel()
        future = asyncio.get_running_loop().create_future()
        self._pending[kind] = future
        try:
            await self.send({"type": kind})
            if timeout is None:
                return await future
            return await asyncio.wait_for(future, timeout=timeout)
        finally:
            if self._pending.get(kind) is future:
                del self._pending[kind]

    def resolve(self, message: dict) -> bool:
        kind = REPLY_KINDS.get(message.get("type"))
        future = self._pending.get(kind) if kind else None
        if future is None or future.done():
            return False
        future.set_result(message)
        return True

    def cancel_all(self):
        for future in self._pending.values():
            if not future.done():
                future.cancel()
        self._pending.clear()

    async def push_state(self, snapshot: ScanSessionSnapshot):
        try:
            await self.send({"type": "state", "session": snapshot.model_dump(mode="json")})
        except (WebSocketDisconnect, RuntimeError):
            logger.debug("Scanner client gone; state update not delivered")

class RemoteCaptureDevice(CaptureDevice):
    """Capture device living in the operator's browser"""

    def __init__(self, channel: OperatorChannel, acquire_timeout: Optional[float] = None):
        self.channel = channel
        self.acquire_timeout = acquire_timeout or settings.SCANNER_CAMERA_TIMEOUT_SECONDS
        self._on_decoded: Optional[DecodeCallback] = None
        self.running = False

    async def start(self, on_decoded: DecodeCallback) -> None:
        try:
            reply = await self.channel.command("camera_start", timeout=self.acquire_timeout)
        except asyncio.TimeoutError:
            raise DeviceError("Camera did not respond")
        if reply.get("type") == "camera_failed":
            raise DeviceError(reply.get("message") or DeviceError.default_message)
        self._on_decoded = on_decoded
        self.running = True

    async def stop(self) -> None:
        if not self.running:
            return
        self.running = False
        await self.channel.command("camera_stop")

    async def deliver(self, text: str):
        """Hand a decoded frame to the session; ignored once stopped"""
        if self.running and self._on_decoded is not None:
            await self._on_decoded(text)

def threadpool_validator(session_factory: Callable[[], Session], feed: Optional[ChangeFeed] = None) -> Validator:
    """Run the synchronous ticket validation off the event loop, one DB session per call"""

    def validate_in_thread(text: str) -> ValidationResult:
        db = session_factory()
        try:
            return TicketService(SQLAlchemyTicketStore(db, feed)).validate(text)
        finally:
            db.close()

    async def validate(text: str) -> ValidationResult:
        return await run_in_threadpool(validate_in_thread, text)

    return validate

def _authorise_operator(token: Optional[str], db: Session) -> bool:
    payload = decode_token(token) if token else None
    if payload is None:
        return False
    user = UserService.get_user_by_id(db, payload["sub"])
    return bool(user and user.is_admin)

async def scan_session_endpoint(
    websocket: WebSocket,
    db: Session,
    session_factory: Callable[[], Session],
    token: Optional[str] = None
):
    """Operator scan session.

    Client -> server: decoded, manual_input, manual, scan_again, close, ping and
    the camera replies camera_started / camera_failed / camera_stopped.
    Server -> client: camera_start, camera_stop, state, pong.
    """
    if not await run_in_threadpool(_authorise_operator, token, db):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    channel = OperatorChannel(websocket)
    session = ScanSession(
        device_factory=lambda: RemoteCaptureDevice(channel),
        validator=threadpool_validator(session_factory, change_feed),
        on_change=channel.push_state
    )
    tasks: Set[asyncio.Task] = set()

    def spawn(coro):
        # Session operations may wait on camera replies, so they must not block the receive loop
        task = asyncio.create_task(coro)
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    spawn(session.open())

    disconnected = False
    try:
        while not session.closed:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                continue
            if not isinstance(message, dict):
                continue

            kind = message.get("type")

            if kind in REPLY_KINDS:
                channel.resolve(message)

            elif kind == "decoded":
                device = session.device
                if isinstance(device, RemoteCaptureDevice):
                    spawn(device.deliver(str(message.get("text", ""))))

            elif kind == "manual_input":
                session.set_manual_code(str(message.get("text", "")))

            elif kind == "manual":
                text = message.get("text")
                spawn(session.submit_manual(None if text is None else str(text)))

            elif kind == "scan_again":
                spawn(session.scan_again())

            elif kind == "close":
                break

            elif kind == "ping":
                await channel.send({"type": "pong"})

    except WebSocketDisconnect:
        logger.debug("Scanner client disconnected")
        disconnected = True
    finally:
        channel.cancel_all()
        await session.close()
        if tasks:
            await asyncio.wait(tasks, timeout=settings.SCANNER_CAMERA_TIMEOUT_SECONDS)

    if not disconnected:
        await websocket.close()
