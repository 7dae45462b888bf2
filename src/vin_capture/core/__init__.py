"""
VIN Capture Core Module
=======================

Core VIN utilities, constants, correction and error types.
Single Source of Truth for all VIN-related text handling.
"""

from .vin_utils import (
    # Constants
    VINConstants,
    VIN_LENGTH,
    VIN_VALID_CHARS,
    VIN_INVALID_CHARS,
    # Patterns
    VIN_GENERAL_PATTERN,
    NORTH_AMERICAN_PATTERN,
    matches_general_pattern,
    matches_north_american_pattern,
    # Correction
    aggressive_correct,
    CandidateVin,
    PositionAwareCorrector,
    correct_vin,
    get_corrector,
    clean_barcode_text,
    # Checksum
    calculate_check_digit,
    validate_checksum,
    validate_vin_format,
)
from .frame import FrameBuffer
from .exceptions import (
    ScannerError,
    CameraAccessError,
    CameraError,
    OCREngineError,
    BarcodeNotFoundError,
    BarcodeDecodeError,
    RegistryError,
    ConfigurationError,
)

__all__ = [
    # Constants
    "VINConstants",
    "VIN_LENGTH",
    "VIN_VALID_CHARS",
    "VIN_INVALID_CHARS",
    # Patterns
    "VIN_GENERAL_PATTERN",
    "NORTH_AMERICAN_PATTERN",
    "matches_general_pattern",
    "matches_north_american_pattern",
    # Correction
    "aggressive_correct",
    "CandidateVin",
    "PositionAwareCorrector",
    "correct_vin",
    "get_corrector",
    "clean_barcode_text",
    # Checksum
    "calculate_check_digit",
    "validate_checksum",
    "validate_vin_format",
    # Frames
    "FrameBuffer",
    # Errors
    "ScannerError",
    "CameraAccessError",
    "CameraError",
    "OCREngineError",
    "BarcodeNotFoundError",
    "BarcodeDecodeError",
    "RegistryError",
    "ConfigurationError",
]
