"""
Recognition Loops
=================

One step object per scan mode. The session drives ``step()`` once per frame
slot; a step either returns an accepted VIN or ``None`` (try again on the
next frame). No exception from a single attempt escapes ``step()``.

Every blocking collaborator call runs in a worker thread through
``asyncio.to_thread``. Liveness is re-checked after every await: once the
session is torn down a step does no further work and writes no log entries.

Text mode:
    capture -> preprocess -> OCR -> aggressive correction -> confidence and
    length gate -> registry validation -> accept

Barcode mode:
    decode -> clean -> general pattern -> accept

Author: VIN Capture Team
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from ..config import PreprocessConfig, RecognitionConfig
from ..core.exceptions import BarcodeNotFoundError
from ..core.vin_utils import (
    VIN_LENGTH,
    CandidateVin,
    aggressive_correct,
    clean_barcode_text,
    correct_vin,
    matches_general_pattern,
)
from ..capture.controller import CaptureController
from ..preprocessing import VINPreprocessor
from ..providers.barcode import BarcodeDecoder
from ..providers.ocr_providers import OCRHandle
from ..providers.registry import RegistryValidator

logger = logging.getLogger(__name__)


class RecognitionLoop(ABC):
    """
    Resumable recognition state driven by an external frame scheduler.

    Args:
        controller: Capture controller owning the open stream
        log: Session log writer (suppressed while paused)
        is_alive: Liveness check bound to the session generation that
            created this loop
    """

    def __init__(
        self,
        controller: CaptureController,
        log: Callable[[str], None],
        is_alive: Callable[[], bool],
    ):
        self.controller = controller
        self._log = log
        self.is_alive = is_alive
        self.attempts = 0

    def log(self, message: str) -> None:
        if self.is_alive():
            self._log(message)

    @abstractmethod
    async def step(self) -> Optional[str]:
        """Run one attempt. Returns the accepted VIN or None."""
        ...

    def dispose(self) -> None:
        """Release the recognizer bound to this loop."""


class OCRRecognitionLoop(RecognitionLoop):
    """Text mode: scan band OCR gated by confidence and registry validation."""

    def __init__(
        self,
        controller: CaptureController,
        handle: OCRHandle,
        validator: RegistryValidator,
        log: Callable[[str], None],
        is_alive: Callable[[], bool],
        preprocess_config: Optional[PreprocessConfig] = None,
        recognition_config: Optional[RecognitionConfig] = None,
    ):
        super().__init__(controller, log, is_alive)
        self.handle = handle
        self.validator = validator
        self.preprocessor = VINPreprocessor(preprocess_config)
        self.recognition = recognition_config or RecognitionConfig()
        self.last_candidate: Optional[CandidateVin] = None

    async def step(self) -> Optional[str]:
        self.attempts += 1

        frame = await asyncio.to_thread(self.controller.capture_frame)
        if not self.is_alive():
            return None
        if frame is None:
            self.log("No frame available, waiting for camera")
            return None

        try:
            processed = await asyncio.to_thread(self.preprocessor.process, frame)
            if not self.is_alive():
                return None
            result = await asyncio.to_thread(self.handle.recognize, processed)
        except Exception as e:
            self.log(f"OCR error: {e}")
            return None

        if not self.is_alive():
            return None

        # Gating uses the aggressive corrector only
        corrected = aggressive_correct(result.raw_text)
        self.last_candidate = correct_vin(result.raw_text)
        self.log(f"Detected: {corrected} (confidence {result.confidence:.0f}%)")

        if result.confidence < self.recognition.min_confidence or len(corrected) < self.recognition.min_length:
            return None

        if len(corrected) != VIN_LENGTH or not matches_general_pattern(corrected):
            return None

        vin = self._final_candidate(corrected)
        try:
            valid = await asyncio.to_thread(self.validator.validate, vin)
        except Exception as e:
            self.log(f"Registry validation error: {e}")
            return None

        if not self.is_alive():
            return None
        if not valid:
            self.log(f"Registry rejected {vin}")
            return None

        self.log(f"Valid VIN found: {vin}")
        return vin

    def _final_candidate(self, corrected: str) -> str:
        """
        Position-aware reading when it is a complete VIN, else the gated
        string. The aggressive map rewrites the WMI (1G1 -> 161), the
        position-aware corrector does not.
        """
        if self.last_candidate is not None and self.last_candidate.matches_general_pattern:
            return self.last_candidate.vin
        return corrected

    def dispose(self) -> None:
        self.handle.dispose()


class BarcodeRecognitionLoop(RecognitionLoop):
    """Barcode mode: decodes are exact, no confidence gate and no registry call."""

    def __init__(
        self,
        controller: CaptureController,
        decoder: BarcodeDecoder,
        log: Callable[[str], None],
        is_alive: Callable[[], bool],
    ):
        super().__init__(controller, log, is_alive)
        self.decoder = decoder

    async def step(self) -> Optional[str]:
        self.attempts += 1

        try:
            result = await asyncio.to_thread(self.decoder.decode_once, self.controller.stream)
        except BarcodeNotFoundError:
            return None
        except Exception as e:
            self.log(f"Barcode decode error: {e}")
            return None

        if not self.is_alive():
            return None

        vin = clean_barcode_text(result.raw_text)
        if not matches_general_pattern(vin):
            self.log(f"Invalid VIN barcode: {vin}")
            return None

        self.log(f"Barcode VIN found: {vin}")
        return vin

    def dispose(self) -> None:
        self.decoder.reset()
