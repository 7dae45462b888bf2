"""
Capture Controller
==================

Owns the camera stream for one scan session: acquisition with a fallback,
scan band extraction and best-effort flash control.

The scan band is the region the operator lines the VIN up with: centered,
``min(280 px, 60% of frame width)`` wide and 12% of the frame height tall.
"""

import logging
from typing import Optional

from ..config import CaptureConfig
from ..core.exceptions import CameraAccessError
from ..core.frame import FrameBuffer
from .camera import CameraConstraints, CameraSource, CameraStream

logger = logging.getLogger(__name__)


def crop_scan_band(frame: FrameBuffer, config: Optional[CaptureConfig] = None) -> Optional[FrameBuffer]:
    """
    Crop the centered scan band out of a full frame.

    Returns None for an empty frame. Band width and height are at least 1 px.
    """
    config = config or CaptureConfig()
    if frame.width == 0 or frame.height == 0:
        return None

    band_width = max(1, min(config.band_max_width, int(frame.width * config.band_width_ratio)))
    band_height = max(1, int(frame.height * config.band_height_ratio))

    x = (frame.width - band_width) // 2
    y = (frame.height - band_height) // 2

    return FrameBuffer(frame.data[y:y + band_height, x:x + band_width].copy())


class CaptureController:
    """
    Camera lifecycle for a single session.

    Example:
        controller = CaptureController(OpenCVCameraSource(), config.capture)
        controller.open()
        band = controller.capture_frame()
        controller.close()
    """

    def __init__(self, source: CameraSource, config: Optional[CaptureConfig] = None):
        self.source = source
        self.config = config or CaptureConfig()
        self.stream: Optional[CameraStream] = None
        self.has_flash = False
        self.flash_on = False
        self.used_fallback = False

    @property
    def is_open(self) -> bool:
        return self.stream is not None

    def open(self) -> CameraStream:
        """
        Acquire the camera, falling back to unconstrained access once.

        Raises:
            CameraAccessError: If both attempts fail

        Other device errors propagate once any acquired stream is released.
        """
        self.used_fallback = False
        preferred = CameraConstraints.preferred(self.config)
        try:
            stream = self.source.acquire(preferred)
        except CameraAccessError as e:
            logger.warning(f"Preferred camera unavailable ({e.reason}), retrying with fallback constraints")
            stream = self.source.acquire(CameraConstraints.fallback())
            self.used_fallback = True

        # Owned from here on: close() releases it if the capability query fails
        self.stream = stream
        self.flash_on = False
        try:
            self.has_flash = bool(stream.capabilities().get("torch", False))
        except Exception:
            self.close()
            raise
        logger.info(f"Camera stream open (flash={'yes' if self.has_flash else 'no'})")
        return stream

    def capture_frame(self) -> Optional[FrameBuffer]:
        """Current scan band, or None when no full frame is available."""
        if self.stream is None:
            return None
        frame = self.stream.read_frame()
        if frame is None:
            return None
        return crop_scan_band(frame, self.config)

    def toggle_flash(self) -> bool:
        """
        Flip the torch. Returns False (and logs) when the device has no
        torch or the constraint could not be applied; never raises.
        """
        if self.stream is None or not self.has_flash:
            logger.info("Flash not available on this camera")
            return False

        target = not self.flash_on
        try:
            self.stream.apply_torch(target)
        except Exception as e:
            logger.warning(f"Failed to toggle flash: {e}")
            return False

        self.flash_on = target
        return True

    def close(self) -> None:
        """Stop every track and clear flash state. Idempotent."""
        stream, self.stream = self.stream, None
        self.has_flash = False
        self.flash_on = False
        if stream is None:
            return

        for track in stream.tracks():
            try:
                track.stop()
            except Exception as e:
                logger.warning(f"Failed to stop camera track: {e}")
