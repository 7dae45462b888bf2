"""
VIN Frame Preprocessing Module
==============================

Pixel-buffer transforms that prepare a scan band for OCR.

Classes:
    VINPreprocessor: Fixed-order preprocessing pipeline

Usage:
    from vin_capture.preprocessing import preprocess

    processed = preprocess(frame, config.preprocessing)
"""

from .vin_preprocessor import (
    VINPreprocessor,
    preprocess,
    LUMINOSITY_WEIGHTS,
    CONTRAST_PRESETS,
)

__all__ = [
    'VINPreprocessor',
    'preprocess',
    'LUMINOSITY_WEIGHTS',
    'CONTRAST_PRESETS',
]
