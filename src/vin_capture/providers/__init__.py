"""
Collaborator Providers
======================

OCR engines, barcode decoding and registry validation behind small
interfaces, so the recognition loops never import a third-party library
directly.
"""

from .ocr_providers import (
    OCREngineType,
    OCROptions,
    OCRResult,
    OCRHandle,
    OCREngine,
    TesseractOCREngine,
    PaddleOCREngine,
    OCREngineFactory,
)
from .barcode import (
    BarcodeResult,
    BarcodeDecoder,
    PyzbarBarcodeDecoder,
)
from .registry import (
    RegistryValidator,
    NHTSARegistryValidator,
    CheckDigitValidator,
    create_validator,
)

__all__ = [
    # OCR
    'OCREngineType',
    'OCROptions',
    'OCRResult',
    'OCRHandle',
    'OCREngine',
    'TesseractOCREngine',
    'PaddleOCREngine',
    'OCREngineFactory',
    # Barcode
    'BarcodeResult',
    'BarcodeDecoder',
    'PyzbarBarcodeDecoder',
    # Registry
    'RegistryValidator',
    'NHTSARegistryValidator',
    'CheckDigitValidator',
    'create_validator',
]
