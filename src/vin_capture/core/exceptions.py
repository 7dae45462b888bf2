"""
Scanner Exceptions
==================

Structured errors for the capture pipeline. Every error carries an
``error_code`` and a ``context`` dict for programmatic handling.

Severity is decided by where an error surfaces, not by its class:
camera acquisition and recognizer initialization failures end a session,
everything raised inside a single recognition attempt is logged and retried.
"""

from typing import Any, Dict, Optional


class ScannerError(Exception):
    """
    Base exception for scanner errors.

    Provides structured error information with error codes for programmatic handling.
    """

    def __init__(self, message: str, error_code: str = "SCANNER_ERROR", context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON serialization."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
        }


class CameraAccessError(ScannerError):
    """Raised when the camera cannot be acquired (permission denied, no device)."""

    def __init__(self, reason: str, constraints: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"Could not access camera: {reason}",
            error_code="CAMERA_ACCESS_ERROR",
            context={"reason": reason, "constraints": constraints or {}}
        )
        self.reason = reason


class CameraError(ScannerError):
    """Raised by an open stream, e.g. for an unsupported constraint."""

    def __init__(self, message: str, capability: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="CAMERA_ERROR",
            context={"capability": capability}
        )
        self.capability = capability


class OCREngineError(ScannerError):
    """Raised when the OCR engine fails to initialize or recognize."""

    def __init__(self, message: str, engine: str = "unknown", details: Optional[str] = None):
        super().__init__(
            message=f"OCR engine error ({engine}): {message}",
            error_code="OCR_ENGINE_ERROR",
            context={"engine": engine, "details": details}
        )
        self.engine = engine
        self.details = details


class BarcodeNotFoundError(ScannerError):
    """No barcode in the current frame. Expected, retried silently."""

    def __init__(self, message: str = "No barcode found in frame"):
        super().__init__(message=message, error_code="BARCODE_NOT_FOUND")


class BarcodeDecodeError(ScannerError):
    """Any barcode decoder failure other than 'not found'."""

    def __init__(self, message: str, decoder: str = "unknown"):
        super().__init__(
            message=f"Barcode decoder error ({decoder}): {message}",
            error_code="BARCODE_DECODE_ERROR",
            context={"decoder": decoder}
        )
        self.decoder = decoder


class RegistryError(ScannerError):
    """Raised when a registry validator is misused or misconfigured."""

    def __init__(self, message: str, registry: str = "unknown"):
        super().__init__(
            message=message,
            error_code="REGISTRY_ERROR",
            context={"registry": registry}
        )
        self.registry = registry


class ConfigurationError(ScannerError):
    """Raised when the scanner is misconfigured."""

    def __init__(self, message: str, config_key: Optional[str] = None, expected: Optional[str] = None):
        super().__init__(
            message=f"Configuration error: {message}",
            error_code="CONFIG_ERROR",
            context={"config_key": config_key, "expected": expected}
        )
        self.config_key = config_key
        self.expected = expected
