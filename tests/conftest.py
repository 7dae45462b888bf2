"""
Shared fixtures and fake collaborators for the scanner tests.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import numpy as np
import pytest

from vin_capture.capture.camera import CameraConstraints, CameraSource, CameraStream, VideoTrack
from vin_capture.config import PipelineConfig
from vin_capture.core.exceptions import (
    BarcodeNotFoundError,
    CameraAccessError,
    CameraError,
    OCREngineError,
)
from vin_capture.core.frame import FrameBuffer
from vin_capture.providers.barcode import BarcodeDecoder, BarcodeResult
from vin_capture.providers.ocr_providers import OCREngine, OCRHandle, OCROptions, OCRResult
from vin_capture.providers.registry import RegistryValidator
from vin_capture.recognition.scheduler import FrameScheduler
from vin_capture.session import ScanSession


# =============================================================================
# CAMERA
# =============================================================================

class FakeTrack(VideoTrack):
    def __init__(self):
        self.stop_calls = 0

    @property
    def live(self) -> bool:
        return self.stop_calls == 0

    def stop(self) -> None:
        self.stop_calls += 1


class FakeStream(CameraStream):
    def __init__(
        self,
        frame: Optional[FrameBuffer] = None,
        torch: bool = False,
        torch_fails: bool = False,
        capabilities_error: Optional[Exception] = None,
    ):
        self.frame = frame
        self.capabilities_error = capabilities_error
        self.torch = torch
        self.torch_fails = torch_fails
        self.torch_state: Optional[bool] = None
        self.track = FakeTrack()
        self.reads = 0

    def tracks(self) -> List[VideoTrack]:
        return [self.track]

    def capabilities(self) -> Dict[str, bool]:
        if self.capabilities_error is not None:
            raise self.capabilities_error
        return {"torch": self.torch}

    def read_frame(self) -> Optional[FrameBuffer]:
        self.reads += 1
        return self.frame.copy() if self.frame is not None else None

    def apply_torch(self, on: bool) -> None:
        if self.torch_fails:
            raise CameraError("constraint rejected", capability="torch")
        self.torch_state = on


class FakeCameraSource(CameraSource):
    """Hands out a fresh FakeStream per acquire and records every request."""

    def __init__(
        self,
        frame: Optional[FrameBuffer] = None,
        fail_preferred: bool = False,
        fail_all: bool = False,
        torch: bool = False,
        torch_fails: bool = False,
        acquire_error: Optional[Exception] = None,
        capabilities_error: Optional[Exception] = None,
    ):
        self.frame = frame
        self.acquire_error = acquire_error
        self.capabilities_error = capabilities_error
        self.fail_preferred = fail_preferred
        self.fail_all = fail_all
        self.torch = torch
        self.torch_fails = torch_fails
        self.requests: List[CameraConstraints] = []
        self.streams: List[FakeStream] = []

    def acquire(self, constraints: CameraConstraints) -> CameraStream:
        self.requests.append(constraints)
        if self.fail_all or (self.fail_preferred and constraints.facing_mode is not None):
            raise CameraAccessError("permission denied", constraints=constraints.to_dict())
        if self.acquire_error is not None:
            raise self.acquire_error
        stream = FakeStream(
            self.frame,
            torch=self.torch,
            torch_fails=self.torch_fails,
            capabilities_error=self.capabilities_error,
        )
        self.streams.append(stream)
        return stream

    @property
    def all_released(self) -> bool:
        return all(stream.track.stop_calls >= 1 for stream in self.streams)


# =============================================================================
# RECOGNIZERS
# =============================================================================

class FakeOCRHandle(OCRHandle):
    def __init__(self, results: Sequence[Union[OCRResult, Exception]], options: OCROptions):
        super().__init__("fake", options)
        self.results = list(results)
        self.calls = 0
        self.release_calls = 0

    def _recognize(self, frame) -> OCRResult:
        # The last result repeats forever
        item = self.results[min(self.calls, len(self.results) - 1)]
        self.calls += 1
        if isinstance(item, Exception):
            raise item
        return item

    def _release(self) -> None:
        self.release_calls += 1


class FakeOCREngine(OCREngine):
    def __init__(self, results: Sequence[Union[OCRResult, Exception]], fail_init: bool = False):
        self.results = results
        self.fail_init = fail_init
        self.handles: List[FakeOCRHandle] = []
        self.options: Optional[OCROptions] = None

    @property
    def name(self) -> str:
        return "fake"

    @property
    def is_available(self) -> bool:
        return True

    def initialize(self, options: OCROptions) -> OCRHandle:
        if self.fail_init:
            raise OCREngineError("model missing", engine=self.name)
        self.options = options
        handle = FakeOCRHandle(self.results, options)
        self.handles.append(handle)
        return handle

    @property
    def handle(self) -> FakeOCRHandle:
        return self.handles[-1]


class FakeDecoder(BarcodeDecoder):
    def __init__(self, results: Sequence[Union[str, Exception]]):
        self.results = list(results)
        self.calls = 0
        self.reset_calls = 0

    def decode_once(self, stream: Any) -> BarcodeResult:
        item = self.results[min(self.calls, len(self.results) - 1)]
        self.calls += 1
        if isinstance(item, Exception):
            raise item
        return BarcodeResult(raw_text=item, symbology="CODE39")

    def reset(self) -> None:
        self.reset_calls += 1


class FakeValidator(RegistryValidator):
    def __init__(self, valid: Union[bool, Callable[[str], bool]] = True):
        self.valid = valid
        self.calls: List[str] = []

    def validate(self, vin: str) -> bool:
        self.calls.append(vin)
        if callable(self.valid):
            return self.valid(vin)
        return self.valid


# =============================================================================
# SCHEDULERS
# =============================================================================

class SoonScheduler(FrameScheduler):
    """Next frame slot is the next event loop iteration."""

    def __init__(self):
        self.requests = 0

    def request_frame(self, callback):
        self.requests += 1
        return asyncio.get_running_loop().call_soon(callback)


class ManualHandle:
    def __init__(self, callback):
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(FrameScheduler):
    """Frame slots fire only when the test calls ``fire()``."""

    def __init__(self):
        self.handles: List[ManualHandle] = []

    def request_frame(self, callback):
        handle = ManualHandle(callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> Optional[ManualHandle]:
        if self.handles and not self.handles[-1].cancelled:
            return self.handles[-1]
        return None

    def fire(self) -> None:
        handle = self.pending
        assert handle is not None, "no frame slot pending"
        handle.callback()


# =============================================================================
# FIXTURES
# =============================================================================

def make_frame(width: int = 400, height: int = 200, value: int = 200) -> FrameBuffer:
    data = np.full((height, width, 4), value, dtype=np.uint8)
    data[..., 3] = 255
    return FrameBuffer(data)


@pytest.fixture(autouse=True)
def no_live_session():
    """Every test starts without a live session."""
    ScanSession._live = None
    yield
    ScanSession._live = None


@pytest.fixture
def frame():
    return make_frame()


@pytest.fixture
def camera(frame):
    return FakeCameraSource(frame=frame)


@pytest.fixture
def config():
    return PipelineConfig()


def run(coro, timeout: float = 5.0):
    """Run a coroutine on a fresh event loop with a timeout."""
    return asyncio.run(asyncio.wait_for(coro, timeout))
