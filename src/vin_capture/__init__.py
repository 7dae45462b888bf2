"""
VIN Capture
===========

Camera VIN capture and recognition: point a camera at a VIN plate or
barcode and get back a validated 17-character VIN.

Package Structure:
    vin_capture/
    ├── core/           # VIN constants, correctors, checksum, errors, frames
    ├── preprocessing/  # Scan band preprocessing (numpy + OpenCV)
    ├── capture/        # Camera sources and capture controller
    ├── providers/      # OCR engines, barcode decoder, registry validators
    ├── recognition/    # Frame scheduler and recognition loops
    ├── session.py      # Scan session lifecycle
    └── config.py       # Configuration

Quick Start:
    # Correction
    from vin_capture import correct_vin
    candidate = correct_vin("R1G1JC5444R7252367")
    print(candidate.vin)

    # Live scanning
    from vin_capture import ScanSession, ScanMode
    from vin_capture.capture import OpenCVCameraSource

    session = ScanSession(OpenCVCameraSource(), on_scan=print)
    await session.open(ScanMode.BARCODE)

Version: 1.0.0
"""

__version__ = "1.0.0"
__author__ = "VIN Capture Team"

# Core exports (lightweight, always available)
from .core import (
    VINConstants,
    VIN_LENGTH,
    VIN_VALID_CHARS,
    CandidateVin,
    FrameBuffer,
    aggressive_correct,
    correct_vin,
    clean_barcode_text,
    calculate_check_digit,
    validate_checksum,
    validate_vin_format,
    ScannerError,
)
from .config import PipelineConfig, PreprocessConfig

__all__ = [
    "__version__",
    "__author__",
    # Core
    "VINConstants",
    "VIN_LENGTH",
    "VIN_VALID_CHARS",
    "CandidateVin",
    "FrameBuffer",
    "aggressive_correct",
    "correct_vin",
    "clean_barcode_text",
    "calculate_check_digit",
    "validate_checksum",
    "validate_vin_format",
    "ScannerError",
    # Config
    "PipelineConfig",
    "PreprocessConfig",
    # Session (lazy)
    "ScanSession",
    "ScanMode",
    "ScanStatus",
    "preprocess",
]


# Lazy imports for the session stack (pulls in OpenCV and requests)
def __getattr__(name: str):
    """Lazy import for session and preprocessing."""
    if name in ("ScanSession", "ScanMode", "ScanStatus"):
        from . import session
        return getattr(session, name)
    elif name == "preprocess":
        from .preprocessing import preprocess
        return preprocess
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
