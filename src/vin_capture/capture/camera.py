"""
Camera Sources
==============

Camera acquisition interface and the OpenCV ``VideoCapture`` implementation.

A ``CameraSource`` turns ``CameraConstraints`` into an open ``CameraStream``.
A stream exposes its tracks (released on teardown), its capabilities
(at least ``torch``), frame reads and the torch constraint.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, List, Optional

import cv2

from ..config import CaptureConfig
from ..core.exceptions import CameraAccessError, CameraError
from ..core.frame import FrameBuffer

logger = logging.getLogger(__name__)


@dataclass
class CameraConstraints:
    """Requested camera properties. ``None`` means no preference."""
    device_index: Optional[int] = None
    facing_mode: Optional[str] = None
    ideal_width: Optional[int] = None
    ideal_height: Optional[int] = None
    torch: Optional[bool] = None

    @classmethod
    def preferred(cls, config: CaptureConfig) -> 'CameraConstraints':
        """Rear-facing camera at full HD."""
        return cls(
            device_index=config.device_index,
            facing_mode=config.facing_mode,
            ideal_width=config.ideal_width,
            ideal_height=config.ideal_height,
        )

    @classmethod
    def fallback(cls) -> 'CameraConstraints':
        """Any camera, any resolution."""
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


# =============================================================================
# INTERFACES
# =============================================================================

class VideoTrack(ABC):
    @abstractmethod
    def stop(self) -> None:
        ...

    @property
    @abstractmethod
    def live(self) -> bool:
        ...


class CameraStream(ABC):
    @abstractmethod
    def tracks(self) -> List[VideoTrack]:
        ...

    @abstractmethod
    def capabilities(self) -> Dict[str, bool]:
        ...

    @abstractmethod
    def read_frame(self) -> Optional[FrameBuffer]:
        """Current full frame, or None if the source has none yet."""
        ...

    @abstractmethod
    def apply_torch(self, on: bool) -> None:
        """Raises CameraError when the torch cannot be set."""
        ...


class CameraSource(ABC):
    @abstractmethod
    def acquire(self, constraints: CameraConstraints) -> CameraStream:
        """Raises CameraAccessError when no stream can be opened."""
        ...


# =============================================================================
# OPENCV IMPLEMENTATION
# =============================================================================

class OpenCVVideoTrack(VideoTrack):
    """The single video track of a ``VideoCapture`` device."""

    def __init__(self, cap: Any, device_index: int):
        self._cap = cap
        self.device_index = device_index
        self._lock = threading.Lock()

    @property
    def live(self) -> bool:
        return self._cap is not None

    def read(self):
        with self._lock:
            if self._cap is None:
                return False, None
            return self._cap.read()

    def stop(self) -> None:
        with self._lock:
            if self._cap is None:
                return
            self._cap.release()
            self._cap = None
        logger.debug(f"Camera {self.device_index} released")


class OpenCVCameraStream(CameraStream):
    """Stream over one OpenCV capture device. OpenCV exposes no torch control."""

    def __init__(self, cap: Any, device_index: int):
        self._track = OpenCVVideoTrack(cap, device_index)
        self.device_index = device_index

    def tracks(self) -> List[VideoTrack]:
        return [self._track]

    def capabilities(self) -> Dict[str, bool]:
        return {"torch": False}

    def read_frame(self) -> Optional[FrameBuffer]:
        ok, image = self._track.read()
        if not ok or image is None or image.size == 0:
            return None
        return FrameBuffer.from_bgr(image)

    def apply_torch(self, on: bool) -> None:
        raise CameraError("Torch is not supported by this camera", capability="torch")


class OpenCVCameraSource(CameraSource):
    """
    Local camera through ``cv2.VideoCapture``.

    Preferred constraints open the configured device. Fallback constraints
    (no device index) probe indices ``0..max_probe-1`` and take the first
    that opens. Facing mode is not observable through OpenCV and is ignored.
    """

    def __init__(
        self,
        backend: Optional[int] = None,
        max_probe: int = 4,
        capture_factory: Optional[Callable[..., Any]] = None,
    ):
        self.backend = backend
        self.max_probe = max_probe
        self._factory = capture_factory or cv2.VideoCapture

    def _open(self, index: int) -> Optional[Any]:
        cap = self._factory(index, self.backend) if self.backend is not None else self._factory(index)
        if cap is not None and cap.isOpened():
            return cap
        if cap is not None:
            cap.release()
        return None

    def acquire(self, constraints: CameraConstraints) -> CameraStream:
        if constraints.device_index is not None:
            indices = [constraints.device_index]
        else:
            indices = list(range(self.max_probe))

        for index in indices:
            cap = self._open(index)
            if cap is None:
                continue

            try:
                if constraints.ideal_width and constraints.ideal_height:
                    cap.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.ideal_width)
                    cap.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.ideal_height)

                width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
                height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
            except Exception as e:
                cap.release()
                raise CameraAccessError(
                    f"camera {index} failed to configure: {e}",
                    constraints=constraints.to_dict(),
                ) from e

            logger.info(f"Camera {index} opened | resolved_size={width}x{height}")
            return OpenCVCameraStream(cap, index)

        raise CameraAccessError(
            f"no camera could be opened (tried indices {indices})",
            constraints=constraints.to_dict(),
        )
