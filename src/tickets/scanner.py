"""
Scan session controller.

One ``ScanSession`` is one logical scanning UI: it owns a capture device
while a camera attempt is live, accepts at most one decoded (or manually
entered) code per attempt, forwards it to a validator and keeps the verdict
until the operator explicitly scans again or closes the session.

States::

    IDLE -> ACQUIRING -> SCANNING -> PROCESSING -> RESOLVED -> SCANNING (scan again)
                  \\                       \\
                   ERROR                    ERROR
    any state -> CLOSED

The decode lock is the single source of truth for "a validation is in flight
or done for this attempt". It is always set before the first await on the
decode path so a second near-simultaneous decode is dropped.
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, Union
from enum import Enum
import asyncio
import inspect
import logging

from src.config import settings
from src.tickets.schemas import ScanSessionSnapshot, ValidationResult

logger = logging.getLogger(__name__)

MSG_CAMERA_FAILED = "Failed to start camera. Please ensure camera permissions are granted."
MSG_CAMERA_RESTART_FAILED = "Failed to restart camera"
MSG_VALIDATE_FAILED = "Failed to validate ticket"

DecodeCallback = Callable[[str], Awaitable[None]]
Validator = Callable[[str], Awaitable[ValidationResult]]
ChangeListener = Callable[[ScanSessionSnapshot], Union[None, Awaitable[None]]]

class ScanState(str, Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    SCANNING = "scanning"
    PROCESSING = "processing"
    RESOLVED = "resolved"
    ERROR = "error"
    CLOSED = "closed"

class StopOutcome(str, Enum):
    STOPPED = "stopped"
    TIMED_OUT_ASSUMED_STOPPED = "timed_out_assumed_stopped"
    NOT_RUNNING = "not_running"

class CaptureDevice(ABC):
    """A camera feeding a decoder. Frames without a code never reach the session."""

    @abstractmethod
    async def start(self, on_decoded: DecodeCallback) -> None:
        """Acquire the camera and begin decoding; raise if it cannot be acquired"""

    @abstractmethod
    async def stop(self) -> None:
        """Stop decoding and let go of the camera stream"""

    async def release(self) -> None:
        """Free any remaining resources after stop"""
        return None

class ScanSession:
    """Single scanning attempt lifecycle with decode-once semantics"""

    def __init__(
        self,
        device_factory: Callable[[], CaptureDevice],
        validator: Validator,
        stop_timeout: Optional[float] = None,
        on_change: Optional[ChangeListener] = None
    ):
        self.device_factory = device_factory
        self.validator = validator
        self.stop_timeout = settings.SCANNER_STOP_TIMEOUT_SECONDS if stop_timeout is None else stop_timeout
        self.on_change = on_change

        self.state = ScanState.IDLE
        self.device: Optional[CaptureDevice] = None
        self.decode_locked = False
        self.verdict: Optional[ValidationResult] = None
        self.error: Optional[str] = None
        self.manual_code = ""

        self._acquiring = asyncio.Lock()

    @property
    def closed(self) -> bool:
        return self.state == ScanState.CLOSED

    def snapshot(self) -> ScanSessionSnapshot:
        return ScanSessionSnapshot(
            state=self.state.value,
            verdict=self.verdict,
            error=self.error,
            manual_code=self.manual_code,
            decode_locked=self.decode_locked
        )

    # ------------------------------------------------------------------
    # Camera path
    # ------------------------------------------------------------------
    async def open(self) -> bool:
        """Acquire the capture device and start scanning"""
        if self.state != ScanState.IDLE:
            return self.state == ScanState.SCANNING
        return await self._acquire(MSG_CAMERA_FAILED)

    async def on_decoded(self, text: str) -> Optional[ValidationResult]:
        """Decoder callback. Only the first decode of an attempt is acted upon."""
        if self.state != ScanState.SCANNING or self.decode_locked:
            return None
        self.decode_locked = True
        return await self._process(text, stop_device=True)

    # ------------------------------------------------------------------
    # Manual entry path
    # ------------------------------------------------------------------
    def set_manual_code(self, text: str):
        if not self.closed:
            self.manual_code = text or ""

    async def submit_manual(self, text: Optional[str] = None) -> Optional[ValidationResult]:
        """Validate operator-entered text under the same decode lock as the camera path"""
        if text is not None:
            self.set_manual_code(text)
        value = self.manual_code.strip()
        if not value or self.closed or self.decode_locked:
            return None
        if self.state in (ScanState.PROCESSING, ScanState.RESOLVED):
            return None
        self.decode_locked = True
        return await self._process(value, stop_device=self.device is not None)

    # ------------------------------------------------------------------
    # Restart and teardown
    # ------------------------------------------------------------------
    async def scan_again(self) -> bool:
        """Clear the verdict and lock, replace the device and resume scanning"""
        if self.closed or self.state == ScanState.PROCESSING:
            return False

        self.verdict = None
        self.error = None
        self.manual_code = ""
        self.decode_locked = False

        await self._discard_device()
        return await self._acquire(MSG_CAMERA_RESTART_FAILED)

    async def close(self):
        """Tear the session down; never fails because the camera is slow to stop"""
        if self.closed:
            return
        self.state = ScanState.CLOSED
        await self._discard_device()
        await self._notify()

    async def stop_device(self, device: Optional[CaptureDevice] = None) -> StopOutcome:
        """Stop the device, waiting at most ``stop_timeout`` seconds"""
        device = device or self.device
        if device is None:
            return StopOutcome.NOT_RUNNING

        try:
            await asyncio.wait_for(device.stop(), timeout=self.stop_timeout)
        except asyncio.TimeoutError:
            logger.warning("Capture device did not stop within %.2fs; assuming stopped", self.stop_timeout)
            return StopOutcome.TIMED_OUT_ASSUMED_STOPPED
        except Exception as e:
            logger.warning("Capture device stop failed (%s); treating as stopped", e)
        return StopOutcome.STOPPED

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _acquire(self, failure_message: str) -> bool:
        async with self._acquiring:
            if self.closed:
                return False

            # At most one live device per session
            if self.device is not None:
                await self._discard_device()

            self.state = ScanState.ACQUIRING
            await self._notify()

            device = self.device_factory()
            try:
                await device.start(self.on_decoded)
            except Exception as e:
                logger.warning("Capture device acquisition failed: %s", e)
                await self._release(device)
                if not self.closed:
                    self.state = ScanState.ERROR
                    self.error = failure_message
                    await self._notify()
                return False

            if self.closed:
                # Closed while the camera was starting
                await self.stop_device(device)
                await self._release(device)
                return False

            self.device = device
            self.state = ScanState.SCANNING
            await self._notify()
            return True

    async def _process(self, text: str, stop_device: bool) -> Optional[ValidationResult]:
        self.state = ScanState.PROCESSING
        self.error = None
        await self._notify()

        if stop_device:
            await self._discard_device()

        try:
            result = await self.validator(text)
        except Exception:
            logger.exception("Ticket validation call failed")
            if self.closed:
                return None
            self.state = ScanState.ERROR
            self.error = MSG_VALIDATE_FAILED
            self.decode_locked = False
            await self._notify()
            return None

        if self.closed:
            logger.debug("Session closed before verdict arrived; dropping it")
            return result

        self.verdict = result
        self.state = ScanState.RESOLVED
        await self._notify()
        return result

    async def _discard_device(self):
        device = self.device
        self.device = None
        if device is not None:
            await self.stop_device(device)
            await self._release(device)

    async def _release(self, device: CaptureDevice):
        try:
            await asyncio.wait_for(device.release(), timeout=self.stop_timeout)
        except asyncio.TimeoutError:
            logger.warning("Capture device release timed out")
        except Exception as e:
            logger.warning("Capture device release failed: %s", e)

    async def _notify(self):
        if self.on_change is None:
            return
        try:
            result = self.on_change(self.snapshot())
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Scan session listener failed")
