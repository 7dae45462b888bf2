"""
Scan Session
============

Top-level owned resource for one VIN capture. A session owns the camera
stream (through its ``CaptureController``), the recognizer for the active
mode and the pending frame slot, and releases all of them through a single
idempotent teardown on every exit path: success, fatal error, explicit close
and mode switch.

Only one session is live per process; opening a session tears down whichever
one was live before.

Usage:
    import asyncio
    from vin_capture import ScanSession, ScanMode
    from vin_capture.capture import OpenCVCameraSource

    async def main():
        session = ScanSession(OpenCVCameraSource(), on_scan=print)
        await session.open(ScanMode.TEXT)
        vin = await session.wait()

    asyncio.run(main())

Author: VIN Capture Team
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, ClassVar, Iterator, List, Optional, Union

from .config import PipelineConfig
from .core.exceptions import CameraAccessError, ScannerError
from .core.vin_utils import CandidateVin, correct_vin
from .capture.camera import CameraSource
from .capture.controller import CaptureController
from .providers.barcode import BarcodeDecoder, PyzbarBarcodeDecoder
from .providers.ocr_providers import OCREngine, OCREngineFactory, OCROptions
from .providers.registry import RegistryValidator, create_validator
from .recognition.loops import BarcodeRecognitionLoop, OCRRecognitionLoop, RecognitionLoop
from .recognition.scheduler import AsyncioFrameScheduler, FrameScheduler

logger = logging.getLogger(__name__)


class ScanMode(str, Enum):
    TEXT = 'text'
    BARCODE = 'barcode'


class ScanStatus(str, Enum):
    IDLE = 'idle'
    OPENING = 'opening'
    STREAMING = 'streaming'
    SCANNING = 'scanning'
    PAUSED = 'paused'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'


@dataclass
class LogEntry:
    message: str
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        return f"{self.timestamp.strftime('%H:%M:%S')} {self.message}"


class ScanLog:
    """
    Append-only diagnostic log for one session, mirrored to the module logger.

    Appends are dropped while ``is_paused()`` is true; the recognition loop
    itself keeps running.
    """

    def __init__(self, is_paused: Callable[[], bool]):
        self._entries: List[LogEntry] = []
        self._is_paused = is_paused

    def append(self, message: str) -> Optional[LogEntry]:
        if self._is_paused():
            return None
        entry = LogEntry(message)
        self._entries.append(entry)
        logger.info(message)
        return entry

    @property
    def messages(self) -> List[str]:
        return [entry.message for entry in self._entries]

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)


class ScanSession:
    """
    One VIN capture, from camera open to a single emitted VIN.

    Args:
        camera: Camera source to acquire the stream from
        ocr_engine: Engine for text mode (created from ``config.ocr`` if None)
        barcode_decoder: Decoder for barcode mode (pyzbar if None)
        validator: Registry validator for OCR candidates (from ``config.registry`` if None)
        config: Full pipeline configuration, fixed for the session
        on_scan: Called exactly once with the accepted VIN
        on_error: Called once with a message when the session fails
        scheduler: Frame slot scheduler (``config.capture.frame_rate`` if None)
    """

    _live: ClassVar[Optional['ScanSession']] = None

    def __init__(
        self,
        camera: CameraSource,
        ocr_engine: Optional[OCREngine] = None,
        barcode_decoder: Optional[BarcodeDecoder] = None,
        validator: Optional[RegistryValidator] = None,
        config: Optional[PipelineConfig] = None,
        on_scan: Optional[Callable[[str], Any]] = None,
        on_error: Optional[Callable[[str], Any]] = None,
        scheduler: Optional[FrameScheduler] = None,
    ):
        self.config = config or PipelineConfig()
        self.controller = CaptureController(camera, self.config.capture)
        self.ocr_engine = ocr_engine
        self.barcode_decoder = barcode_decoder
        self.validator = validator
        self._owns_validator = validator is None
        self.on_scan = on_scan
        self.on_error = on_error
        self.scheduler = scheduler or AsyncioFrameScheduler(self.config.capture.frame_rate)

        self.mode = ScanMode.TEXT
        self.status = ScanStatus.IDLE
        self.log = ScanLog(is_paused=self._is_paused)
        self.vin: Optional[str] = None
        self.error: Optional[str] = None

        self._alive = False
        self._generation = 0
        self._emitted = False
        self._recognition: Optional[RecognitionLoop] = None
        self._frame_handle = None
        self._step_task: Optional[asyncio.Task] = None
        self._result: Optional[asyncio.Future] = None
        self._open_lock: Optional[asyncio.Lock] = None
        self._last_candidate: Optional[CandidateVin] = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def has_flash(self) -> bool:
        return self.controller.has_flash

    @property
    def flash_on(self) -> bool:
        return self.controller.flash_on

    @property
    def is_live(self) -> bool:
        return self._alive

    @property
    def last_candidate(self) -> Optional[CandidateVin]:
        """Position-aware reading of the latest OCR text, for display."""
        if self._recognition is not None:
            return getattr(self._recognition, 'last_candidate', None)
        return self._last_candidate

    @classmethod
    def live_session(cls) -> Optional['ScanSession']:
        return cls._live

    def _is_paused(self) -> bool:
        return self.status == ScanStatus.PAUSED

    def _is_alive(self, generation: int) -> bool:
        return self._alive and generation == self._generation

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def open(self, mode: Union[ScanMode, str] = ScanMode.TEXT) -> None:
        """
        Acquire the camera, initialize the recognizer for ``mode`` and start
        scanning. Failures end the session (status FAILED, ``on_error``);
        they are not raised.
        """
        if self._open_lock is None:
            self._open_lock = asyncio.Lock()

        async with self._open_lock:
            previous = ScanSession._live
            if previous is not None and previous is not self:
                logger.info("Closing previously live scan session")
                await previous.close()
            self._teardown()

            ScanSession._live = self
            self.mode = ScanMode(mode)
            self._generation += 1
            generation = self._generation
            self._alive = True
            self._emitted = False
            self.vin = None
            self.error = None
            self._last_candidate = None
            self._result = asyncio.get_running_loop().create_future()

            self.status = ScanStatus.OPENING
            self.log.append(f"Opening camera ({self.mode.value} mode)")

            try:
                await asyncio.to_thread(self.controller.open)
            except CameraAccessError as e:
                self._fail(generation, e.message)
                return
            except Exception as e:
                message = e.message if isinstance(e, ScannerError) else str(e)
                self._fail(generation, f"Camera error: {message}")
                return

            if not self._is_alive(generation):
                # Closed while the camera was being acquired
                self._teardown()
                return

            if self.controller.used_fallback:
                self.log.append("Preferred camera unavailable, using fallback constraints")
            self.status = ScanStatus.STREAMING

            try:
                recognition = await asyncio.to_thread(self._create_loop, generation)
            except Exception as e:
                message = e.message if isinstance(e, ScannerError) else str(e)
                self._fail(generation, f"Failed to initialize recognizer: {message}")
                return

            if not self._is_alive(generation):
                recognition.dispose()
                self._teardown()
                return

            self._recognition = recognition
            self.status = ScanStatus.SCANNING
            self.log.append("Scanning started")
            self._schedule_next(generation)

    def _create_loop(self, generation: int) -> RecognitionLoop:
        def is_alive() -> bool:
            return self._is_alive(generation)

        if self.mode == ScanMode.BARCODE:
            if self.barcode_decoder is None:
                self.barcode_decoder = PyzbarBarcodeDecoder()
            self.barcode_decoder.initialize()
            return BarcodeRecognitionLoop(
                self.controller,
                self.barcode_decoder,
                log=self.log.append,
                is_alive=is_alive,
            )

        if self.ocr_engine is None:
            self.ocr_engine = OCREngineFactory.create(self.config.ocr.engine, self.config.ocr)
        if self.validator is None:
            self.validator = create_validator(self.config.registry)

        handle = self.ocr_engine.initialize(OCROptions.from_config(self.config.ocr))
        return OCRRecognitionLoop(
            self.controller,
            handle,
            self.validator,
            log=self.log.append,
            is_alive=is_alive,
            preprocess_config=self.config.preprocessing,
            recognition_config=self.config.recognition,
        )

    async def switch_mode(self, mode: Union[ScanMode, str]) -> None:
        """Full teardown, then reopen in ``mode``."""
        await self.close()
        await self.open(mode)

    async def close(self) -> None:
        """Release everything. Safe to call repeatedly and from any state."""
        self._teardown()

    async def wait(self) -> Optional[str]:
        """The emitted VIN, or None once the session closes or fails without one."""
        if self._result is None:
            return None
        return await asyncio.shield(self._result)

    def _teardown(self) -> None:
        was_alive = self._alive
        self._alive = False

        handle, self._frame_handle = self._frame_handle, None
        if handle is not None:
            handle.cancel()

        task, self._step_task = self._step_task, None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

        recognition, self._recognition = self._recognition, None
        if recognition is not None:
            self._last_candidate = getattr(recognition, 'last_candidate', None)
            try:
                recognition.dispose()
            except Exception as e:
                logger.warning(f"Failed to dispose recognizer: {e}")

        self.controller.close()

        if self._owns_validator and self.validator is not None:
            self.validator.close()
            self.validator = None

        if ScanSession._live is self:
            ScanSession._live = None

        if self.status not in (ScanStatus.SUCCEEDED, ScanStatus.FAILED):
            self.status = ScanStatus.IDLE

        if self._result is not None and not self._result.done():
            self._result.set_result(self.vin)

        if was_alive:
            logger.debug("Scan session torn down")

    def _fail(self, generation: int, message: str) -> None:
        if not self._is_alive(generation):
            return
        self.log.append(f"Error: {message}")
        self.error = message
        self.status = ScanStatus.FAILED
        self._teardown()
        if self.on_error is not None:
            self.on_error(message)

    # -------------------------------------------------------------------------
    # Loop driving
    # -------------------------------------------------------------------------

    def _schedule_next(self, generation: int) -> None:
        if not self._is_alive(generation):
            return
        self._frame_handle = self.scheduler.request_frame(lambda: self._on_frame(generation))

    def _on_frame(self, generation: int) -> None:
        self._frame_handle = None
        if not self._is_alive(generation):
            return
        self._step_task = asyncio.get_running_loop().create_task(self._run_step(generation))

    async def _run_step(self, generation: int) -> None:
        if not self._is_alive(generation) or self._recognition is None:
            return

        try:
            vin = await self._recognition.step()
        except Exception as e:
            logger.exception("Recognition step failed")
            if self._is_alive(generation):
                self.log.append(f"Recognition error: {e}")
            vin = None

        if not self._is_alive(generation):
            return
        if vin:
            self._emit(vin)
            return
        self._schedule_next(generation)

    def _emit(self, vin: str) -> None:
        if self._emitted:
            return
        self._emitted = True
        self.vin = vin
        self.log.append(f"VIN accepted: {vin}")
        self.status = ScanStatus.SUCCEEDED
        self._teardown()
        if self.on_scan is not None:
            self.on_scan(vin)

    # -------------------------------------------------------------------------
    # Operator controls
    # -------------------------------------------------------------------------

    def toggle_pause(self) -> bool:
        """
        Toggle Paused. While paused the loop keeps running but log writes are
        suppressed. Returns True when the session is now paused.
        """
        if self.status == ScanStatus.SCANNING:
            self.log.append("Scanning paused")
            self.status = ScanStatus.PAUSED
        elif self.status == ScanStatus.PAUSED:
            self.status = ScanStatus.SCANNING
            self.log.append("Scanning resumed")
        return self.status == ScanStatus.PAUSED

    async def toggle_flash(self) -> bool:
        """Best effort; returns False and logs when the torch cannot be set."""
        ok = await asyncio.to_thread(self.controller.toggle_flash)
        if ok:
            self.log.append(f"Flash {'on' if self.flash_on else 'off'}")
        else:
            self.log.append("Flash not available")
        return ok

    async def submit_manual(self, text: str, require_registry: bool = False) -> Optional[str]:
        """
        Manual override: accept typed text after position-aware correction.

        Returns the emitted VIN, or None if the text is not a VIN (or the
        registry rejects it when ``require_registry`` is set).
        """
        if self._emitted:
            return None

        candidate = correct_vin(text)
        if not candidate.matches_general_pattern:
            self.log.append(f"Manual entry is not a valid VIN: {candidate.vin}")
            return None

        if require_registry:
            if self.validator is None:
                self.validator = create_validator(self.config.registry)
            valid = await asyncio.to_thread(self.validator.validate, candidate.vin)
            if not valid:
                self.log.append(f"Registry rejected manual entry {candidate.vin}")
                return None

        self._emit(candidate.vin)
        return candidate.vin


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
