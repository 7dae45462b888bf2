"""
OCR Engines - Recognizer Abstraction Layer
==========================================

Provides a unified interface for the OCR backends used by the text loop:
- Tesseract (default, via pytesseract)
- PaddleOCR (local deep-learning recognizer)

An engine is initialized once per session with ``OCROptions`` and returns an
``OCRHandle``. The handle is what the loop calls on every frame; it is
disposed by the session teardown.

Usage:
    from vin_capture.providers import OCREngineFactory, OCROptions

    engine = OCREngineFactory.create("tesseract")
    handle = engine.initialize(OCROptions())
    result = handle.recognize(frame)
    print(result.raw_text, result.confidence)
    handle.dispose()

Author: VIN Capture Team
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type, Union

import numpy as np

from ..config import OCRConfig
from ..core.exceptions import OCREngineError
from ..core.frame import FrameBuffer
from ..core.vin_utils import VINConstants

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMS AND DATA CLASSES
# =============================================================================

class OCREngineType(str, Enum):
    """Supported OCR engine types."""
    TESSERACT = "tesseract"
    PADDLEOCR = "paddleocr"


@dataclass
class OCROptions:
    """Per-session recognizer options."""
    whitelist_alphabet: str = VINConstants.OCR_WHITELIST
    single_line_mode: bool = True
    preserve_spacing: bool = False

    @classmethod
    def from_config(cls, config: OCRConfig) -> 'OCROptions':
        return cls(
            whitelist_alphabet=config.whitelist_alphabet,
            single_line_mode=config.single_line_mode,
            preserve_spacing=config.preserve_spacing,
        )


@dataclass
class OCRResult:
    """
    Recognizer output for one frame.

    Attributes:
        raw_text: Recognized text, uncorrected
        confidence: Engine confidence on a 0-100 scale
        engine: Name of the engine that produced it
        metadata: Engine-specific details for debugging
    """
    raw_text: str
    confidence: float
    engine: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "raw_text": self.raw_text,
            "confidence": self.confidence,
            "engine": self.engine,
            "metadata": self.metadata,
        }


def _as_rgb(frame: Union[FrameBuffer, np.ndarray]) -> np.ndarray:
    if isinstance(frame, FrameBuffer):
        return np.ascontiguousarray(frame.rgb)
    if frame.ndim == 3 and frame.shape[2] == 4:
        return np.ascontiguousarray(frame[..., :3])
    return frame


# =============================================================================
# ABSTRACT INTERFACES
# =============================================================================

class OCRHandle(ABC):
    """
    Initialized recognizer bound to one session.

    Thread Safety: a handle is used by one recognition loop at a time, but
    ``dispose()`` may arrive from the event loop while a worker thread is
    still inside ``recognize()``. The engine is then released by that call
    once it returns.
    """

    def __init__(self, engine_name: str, options: OCROptions):
        self.engine_name = engine_name
        self.options = options
        self._disposed = False
        self._in_flight = 0
        self._lock = threading.Lock()

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def recognize(self, frame: Union[FrameBuffer, np.ndarray]) -> OCRResult:
        """
        Recognize text in a preprocessed frame.

        Raises:
            OCREngineError: If the handle was disposed or recognition fails
        """
        with self._lock:
            if self._disposed:
                raise OCREngineError("Handle already disposed", engine=self.engine_name)
            self._in_flight += 1

        try:
            return self._recognize(frame)
        finally:
            with self._lock:
                self._in_flight -= 1
                release = self._disposed and self._in_flight == 0
            if release:
                self._release_now()

    @abstractmethod
    def _recognize(self, frame: Union[FrameBuffer, np.ndarray]) -> OCRResult:
        ...

    def dispose(self) -> None:
        """Release engine resources. Safe to call more than once."""
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            release = self._in_flight == 0
        if release:
            self._release_now()
        else:
            logger.debug(f"{self.engine_name} handle disposed during recognition, release deferred")

    def _release_now(self) -> None:
        self._release()
        logger.debug(f"{self.engine_name} handle disposed")

    def _release(self) -> None:
        pass


class OCREngine(ABC):
    """
    Abstract base class for OCR engines.

    All backends implement this interface so the recognition loop never
    depends on a specific library.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the engine name."""
        ...

    @property
    @abstractmethod
    def is_available(self) -> bool:
        """Check if the engine's library is installed."""
        ...

    @abstractmethod
    def initialize(self, options: OCROptions) -> OCRHandle:
        """
        Initialize the engine for one session.

        Raises:
            OCREngineError: If initialization fails
        """
        ...


# =============================================================================
# TESSERACT ENGINE
# =============================================================================

class TesseractHandle(OCRHandle):
    """Handle that runs ``pytesseract.image_to_data`` per frame."""

    def __init__(self, pytesseract_module: Any, options: OCROptions, lang: str, tess_config: str):
        super().__init__("Tesseract", options)
        self._pytesseract = pytesseract_module
        self.lang = lang
        self.tess_config = tess_config

    def _recognize(self, frame: Union[FrameBuffer, np.ndarray]) -> OCRResult:
        image = _as_rgb(frame)
        try:
            data = self._pytesseract.image_to_data(
                image,
                lang=self.lang,
                config=self.tess_config,
                output_type=self._pytesseract.Output.DICT,
            )
        except Exception as e:
            raise OCREngineError(
                f"Recognition failed: {e}",
                engine=self.engine_name,
                details=str(e),
            ) from e

        text, confidence = self._parse_data(data)
        return OCRResult(
            raw_text=text,
            confidence=confidence,
            engine=self.engine_name,
            metadata={"words": len(text.split())},
        )

    def _parse_data(self, data: Dict[str, List[Any]]) -> Tuple[str, float]:
        words: List[str] = []
        confidences: List[float] = []

        for word, conf in zip(data.get('text', []), data.get('conf', [])):
            word = str(word).strip()
            if not word:
                continue
            words.append(word)
            try:
                value = float(conf)
            except (TypeError, ValueError):
                continue
            if value >= 0:
                confidences.append(value)

        separator = ' ' if self.options.preserve_spacing else ''
        text = separator.join(words)
        confidence = float(np.mean(confidences)) if confidences else 0.0
        return text, confidence


class TesseractOCREngine(OCREngine):
    """
    Tesseract-based text recognition.

    Features:
    - Local processing, no model download
    - Character whitelist enforced by the engine
    - Single-line page segmentation (PSM 7) for scan bands
    """

    def __init__(self, config: Optional[OCRConfig] = None):
        self.config = config or OCRConfig()

    @property
    def name(self) -> str:
        return "Tesseract"

    @property
    def is_available(self) -> bool:
        """Check if pytesseract is installed."""
        try:
            import pytesseract  # noqa: F401
            return True
        except ImportError:
            return False

    def build_config(self, options: OCROptions) -> str:
        """Build the tesseract command line options."""
        psm = 7 if options.single_line_mode else 6
        parts = [
            f"--oem {self.config.oem}",
            f"--psm {psm}",
            f"-c tessedit_char_whitelist={options.whitelist_alphabet}",
            f"-c preserve_interword_spaces={1 if options.preserve_spacing else 0}",
        ]
        return " ".join(parts)

    def initialize(self, options: OCROptions) -> OCRHandle:
        if not self.is_available:
            raise OCREngineError(
                "pytesseract is not installed. Run: pip install pytesseract",
                engine=self.name,
            )

        try:
            import pytesseract

            if self.config.tesseract_cmd:
                pytesseract.pytesseract.tesseract_cmd = self.config.tesseract_cmd

            version = pytesseract.get_tesseract_version()
            logger.info(f"Initializing Tesseract {version} (lang={self.config.language})")
        except Exception as e:
            raise OCREngineError(
                f"Failed to initialize Tesseract: {e}",
                engine=self.name,
                details=str(e),
            ) from e

        return TesseractHandle(pytesseract, options, self.config.language, self.build_config(options))


# =============================================================================
# PADDLEOCR ENGINE
# =============================================================================

class PaddleHandle(OCRHandle):
    """Handle wrapping a PaddleOCR predictor."""

    def __init__(self, ocr: Any, options: OCROptions, lang: str):
        super().__init__("PaddleOCR", options)
        self._ocr = ocr
        self.lang = lang
        self._allowed = set(options.whitelist_alphabet)

    def _recognize(self, frame: Union[FrameBuffer, np.ndarray]) -> OCRResult:
        image = _as_rgb(frame)
        # PaddleOCR expects BGR
        image = np.ascontiguousarray(image[..., ::-1]) if image.ndim == 3 else image

        try:
            result = self._ocr.predict(image)
        except Exception as e:
            raise OCREngineError(
                f"OCR prediction failed: {e}",
                engine=self.engine_name,
                details=str(e),
            ) from e

        text, score = self._parse_result(result)
        return OCRResult(
            raw_text=self._filter(text),
            confidence=score * 100.0,
            engine=self.engine_name,
            metadata={"lang": self.lang},
        )

    def _filter(self, text: str) -> str:
        # PaddleOCR has no native whitelist
        kept = []
        for char in text.upper():
            if char in self._allowed or (char == ' ' and self.options.preserve_spacing):
                kept.append(char)
        return ''.join(kept)

    @staticmethod
    def _parse_result(result: Any) -> Tuple[str, float]:
        """Parse PaddleOCR result format."""
        if not result:
            return "", 0.0

        # PaddleOCR v3.x returns a list of dicts
        if isinstance(result, list):
            result = result[0]

        if isinstance(result, dict) or hasattr(result, 'get'):
            texts = list(result.get('rec_texts', []) or [])
            scores = list(result.get('rec_scores', []) or [])
            if texts:
                avg_score = float(np.mean(scores)) if scores else 0.0
                return ''.join(texts), avg_score

        return "", 0.0

    def _release(self) -> None:
        self._ocr = None


class PaddleOCREngine(OCREngine):
    """
    PaddleOCR-based text recognition.

    Uses PP-OCRv3 models, which read stamped VIN plates better than v4/v5.
    Document orientation and unwarping are disabled since the input is a
    single cropped line.
    """

    def __init__(self, config: Optional[OCRConfig] = None):
        self.config = config or OCRConfig()

    @property
    def name(self) -> str:
        return "PaddleOCR"

    @property
    def is_available(self) -> bool:
        """Check if PaddleOCR is installed."""
        try:
            from paddleocr import PaddleOCR  # noqa: F401
            return True
        except ImportError:
            return False

    def initialize(self, options: OCROptions) -> OCRHandle:
        if not self.is_available:
            raise OCREngineError(
                "PaddleOCR is not installed. Run: pip install paddleocr",
                engine=self.name,
            )

        try:
            from paddleocr import PaddleOCR

            logger.info(f"Initializing PaddleOCR with {self.config.paddle_ocr_version}...")
            ocr = PaddleOCR(
                lang=self.config.paddle_lang,
                ocr_version=self.config.paddle_ocr_version,
                use_doc_orientation_classify=False,
                use_doc_unwarping=False,
                use_textline_orientation=False,
                text_det_box_thresh=self.config.paddle_det_box_thresh,
            )
        except Exception as e:
            raise OCREngineError(
                f"Failed to initialize PaddleOCR: {e}",
                engine=self.name,
                details=str(e),
            ) from e

        logger.info(f"PaddleOCR ({self.config.paddle_ocr_version}) initialized successfully")
        return PaddleHandle(ocr, options, self.config.paddle_lang)


# =============================================================================
# FACTORY
# =============================================================================

class OCREngineFactory:
    """
    Factory for creating OCR engine instances.

    Usage:
        engine = OCREngineFactory.create(OCREngineType.TESSERACT)
        engine = OCREngineFactory.create("paddleocr", config=config.ocr)
    """

    _engines: Dict[OCREngineType, Type[OCREngine]] = {
        OCREngineType.TESSERACT: TesseractOCREngine,
        OCREngineType.PADDLEOCR: PaddleOCREngine,
    }

    @classmethod
    def create(
        cls,
        engine_type: Union[str, OCREngineType],
        config: Optional[OCRConfig] = None,
    ) -> OCREngine:
        """
        Create an OCR engine instance (not yet initialized).

        Raises:
            ValueError: If engine type is not supported
        """
        if isinstance(engine_type, str):
            try:
                engine_type = OCREngineType(engine_type.lower())
            except ValueError:
                available = [e.value for e in OCREngineType]
                raise ValueError(
                    f"Unknown OCR engine: '{engine_type}'. "
                    f"Available: {available}"
                )

        engine_class = cls._engines.get(engine_type)
        if engine_class is None:
            raise ValueError(f"Engine not implemented: {engine_type.value}")

        return engine_class(config=config)

    @classmethod
    def list_available(cls) -> List[str]:
        """List all registered engine types."""
        return [e.value for e in cls._engines.keys()]

    @classmethod
    def register(cls, engine_type: OCREngineType, engine_class: type) -> None:
        """Register a new engine type."""
        if not issubclass(engine_class, OCREngine):
            raise TypeError(
                f"Engine class must inherit from OCREngine, "
                f"got {engine_class.__name__}"
            )
        cls._engines[engine_type] = engine_class
        logger.info(f"Registered OCR engine: {engine_type.value}")
