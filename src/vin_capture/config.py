"""
Scanner Configuration - Centralized Settings
============================================

All configurable parameters in one place. A ``PipelineConfig`` is built once
and passed explicitly into the session; nothing in the pipeline reads
ambient settings on its own.

Supports environment variable overrides and JSON/YAML settings files.

Usage:
    from vin_capture.config import PipelineConfig
    config = PipelineConfig.load("scanner.yaml")
    print(config.preprocessing.grayscale_method)

Environment Variables:
    VIN_SCAN_GRAYSCALE=luminosity
    VIN_SCAN_MIN_CONFIDENCE=50
    VIN_SCAN_OCR_ENGINE=paddleocr
    VIN_SCAN_LOG_LEVEL=DEBUG

Author: VIN Capture Team
"""

import os
import json
import logging
from dataclasses import dataclass, field, asdict, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar, Union

import yaml

from .core.exceptions import ConfigurationError
from .core.vin_utils import VINConstants

logger = logging.getLogger(__name__)


def _get_env_float(key: str, default: float) -> float:
    """Get float from environment variable."""
    value = os.environ.get(key)
    if value is not None:
        try:
            return float(value)
        except ValueError:
            logger.warning(f"Invalid float for {key}: {value}, using default {default}")
    return default


def _get_env_int(key: str, default: int) -> int:
    """Get int from environment variable."""
    value = os.environ.get(key)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            logger.warning(f"Invalid int for {key}: {value}, using default {default}")
    return default


def _get_env_bool(key: str, default: bool) -> bool:
    """Get bool from environment variable."""
    value = os.environ.get(key)
    if value is not None:
        return value.lower() in ('true', '1', 'yes', 'on')
    return default


def _get_env_str(key: str, default: str) -> str:
    """Get string from environment variable."""
    return os.environ.get(key, default)


# =============================================================================
# ENUMERATED OPTIONS
# =============================================================================

class GrayscaleMethod(str, Enum):
    AVERAGE = 'average'
    BLUE_CHANNEL = 'blue-channel'
    LUMINOSITY = 'luminosity'


class BlueEmphasis(str, Enum):
    ZERO = 'zero'
    NORMAL = 'normal'
    HIGH = 'high'
    VERY_HIGH = 'very-high'


class ContrastLevel(str, Enum):
    NORMAL = 'normal'
    HIGH = 'high'
    VERY_HIGH = 'very-high'


MORPH_KERNEL_SIZES = (1, 3, 5, 7, 9)

E = TypeVar('E', bound=Enum)


def _coerce_enum(enum_cls: Type[E], value: Union[str, E], key: str) -> E:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        raise ConfigurationError(
            f"Unknown value '{value}' for {key}",
            config_key=key,
            expected=", ".join(member.value for member in enum_cls),
        )


# =============================================================================
# SECTIONS
# =============================================================================

@dataclass
class PreprocessConfig:
    """
    Frame preprocessing configuration.

    Enumerated options (grayscale method, blue emphasis, contrast level,
    kernel size) plus five boolean toggles. Defaults are tuned for stamped
    and printed VIN labels photographed under mixed lighting.
    """

    grayscale_method: GrayscaleMethod = field(
        default_factory=lambda: _get_env_str('VIN_SCAN_GRAYSCALE', GrayscaleMethod.BLUE_CHANNEL.value)
    )
    blue_emphasis: BlueEmphasis = field(
        default_factory=lambda: _get_env_str('VIN_SCAN_BLUE_EMPHASIS', BlueEmphasis.VERY_HIGH.value)
    )
    contrast: ContrastLevel = field(
        default_factory=lambda: _get_env_str('VIN_SCAN_CONTRAST', ContrastLevel.VERY_HIGH.value)
    )
    morph_kernel_size: int = field(
        default_factory=lambda: _get_env_int('VIN_SCAN_MORPH_KERNEL', 3)
    )

    # Toggles
    invert_light_text: bool = True
    invert_dark_text: bool = False
    edge_enhancement: bool = True
    noise_reduction: bool = True
    adaptive_contrast: bool = True

    # Stage constants
    luminance_threshold: float = 128.0
    adaptive_window: int = 5
    unsharp_radius: int = 1
    unsharp_amount: float = 2.0
    unsharp_threshold: float = 5.0
    blue_channel_edge_ratio: float = 0.15
    binarize_low: int = 75
    binarize_high: int = 180

    # Keys used by the settings blob persisted by the scanner UI
    SETTINGS_KEYS = {
        'grayscaleMethod': 'grayscale_method',
        'blueEmphasis': 'blue_emphasis',
        'contrast': 'contrast',
        'morphKernelSize': 'morph_kernel_size',
        'autoInvert': 'invert_light_text',
        'autoInvertDark': 'invert_dark_text',
        'edgeEnhancement': 'edge_enhancement',
        'noiseReduction': 'noise_reduction',
        'adaptiveContrast': 'adaptive_contrast',
    }

    def __post_init__(self):
        self.grayscale_method = _coerce_enum(GrayscaleMethod, self.grayscale_method, 'grayscale_method')
        self.blue_emphasis = _coerce_enum(BlueEmphasis, self.blue_emphasis, 'blue_emphasis')
        self.contrast = _coerce_enum(ContrastLevel, self.contrast, 'contrast')
        try:
            self.morph_kernel_size = int(self.morph_kernel_size)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"morph_kernel_size must be an integer, got {self.morph_kernel_size!r}",
                config_key='morph_kernel_size',
            )
        if self.morph_kernel_size not in MORPH_KERNEL_SIZES:
            raise ConfigurationError(
                f"Unsupported morph_kernel_size {self.morph_kernel_size}",
                config_key='morph_kernel_size',
                expected=str(MORPH_KERNEL_SIZES),
            )

    @classmethod
    def from_settings(cls, settings: Dict[str, Any]) -> 'PreprocessConfig':
        """
        Build from a settings blob. Accepts both the UI's camelCase keys and
        the field names; unknown keys are ignored, missing keys use defaults.
        """
        kwargs: Dict[str, Any] = {}
        names = {f.name for f in fields(cls)}
        for key, value in (settings or {}).items():
            name = cls.SETTINGS_KEYS.get(key, key)
            if name in names:
                kwargs[name] = value
        return cls(**kwargs)


@dataclass
class CaptureConfig:
    """Camera acquisition and scan band geometry."""

    device_index: int = field(
        default_factory=lambda: _get_env_int('VIN_SCAN_CAMERA_INDEX', 0)
    )
    facing_mode: str = 'environment'
    ideal_width: int = 1920
    ideal_height: int = 1080

    # Scan band: centered, width = min(max_width, ratio * frame width)
    band_max_width: int = 280
    band_width_ratio: float = 0.6
    band_height_ratio: float = 0.12

    # Frame cadence for the recognition loop
    frame_rate: float = field(
        default_factory=lambda: _get_env_float('VIN_SCAN_FRAME_RATE', 30.0)
    )


@dataclass
class OCRConfig:
    """OCR engine configuration."""

    engine: str = field(
        default_factory=lambda: _get_env_str('VIN_SCAN_OCR_ENGINE', 'tesseract')
    )
    language: str = 'eng'
    whitelist_alphabet: str = VINConstants.OCR_WHITELIST
    single_line_mode: bool = True
    preserve_spacing: bool = False

    # Tesseract
    tesseract_cmd: Optional[str] = field(
        default_factory=lambda: os.environ.get('VIN_SCAN_TESSERACT_CMD')
    )
    oem: int = 3

    # PaddleOCR
    paddle_lang: str = 'en'
    paddle_ocr_version: str = 'PP-OCRv3'  # v3 reads VIN plates better
    paddle_det_box_thresh: float = 0.3


@dataclass
class RecognitionConfig:
    """Acceptance gates for the OCR loop."""

    min_confidence: float = field(
        default_factory=lambda: _get_env_float('VIN_SCAN_MIN_CONFIDENCE', 40.0)
    )
    min_length: int = field(
        default_factory=lambda: _get_env_int('VIN_SCAN_MIN_LENGTH', 15)
    )


@dataclass
class RegistryConfig:
    """Vehicle registry validation."""

    base_url: str = field(
        default_factory=lambda: _get_env_str(
            'VIN_SCAN_REGISTRY_URL', 'https://vpic.nhtsa.dot.gov/api/vehicles/decodevin'
        )
    )
    timeout: float = 10.0  # seconds
    max_retries: int = 3
    retry_delay: float = 0.5  # seconds, doubled per attempt
    offline: bool = field(
        default_factory=lambda: _get_env_bool('VIN_SCAN_OFFLINE', False)
    )


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = field(
        default_factory=lambda: _get_env_str('VIN_SCAN_LOG_LEVEL', 'INFO')
    )
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    date_format: str = '%Y-%m-%d %H:%M:%S'

    # File logging (optional)
    log_file: Optional[str] = field(
        default_factory=lambda: os.environ.get('VIN_SCAN_LOG_FILE')
    )


@dataclass
class PipelineConfig:
    """Complete scanner configuration."""

    preprocessing: PreprocessConfig = field(default_factory=PreprocessConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    ocr: OCRConfig = field(default_factory=OCRConfig)
    recognition: RecognitionConfig = field(default_factory=RecognitionConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary (enums as their values)."""
        data = asdict(self)
        for key, value in data['preprocessing'].items():
            if isinstance(value, Enum):
                data['preprocessing'][key] = value.value
        return data

    def save(self, path: Union[str, Path]):
        """Save configuration to a JSON or YAML file (by suffix)."""
        path = Path(path)
        with open(path, 'w') as f:
            if path.suffix.lower() in ('.yaml', '.yml'):
                yaml.safe_dump(self.to_dict(), f, sort_keys=False)
            else:
                json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'PipelineConfig':
        """Load configuration from a JSON or YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}", config_key='path')

        with open(path) as f:
            if path.suffix.lower() in ('.yaml', '.yml'):
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config root must be a mapping: {path}", config_key='path')

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PipelineConfig':
        """Build from nested sections; unknown keys are ignored."""
        config = cls()

        if 'preprocessing' in data:
            config.preprocessing = PreprocessConfig.from_settings(data['preprocessing'])

        for section in ('capture', 'ocr', 'recognition', 'registry', 'logging'):
            if section not in data:
                continue
            target = getattr(config, section)
            for key, value in (data[section] or {}).items():
                if hasattr(target, key):
                    setattr(target, key, value)
                else:
                    logger.debug(f"Ignoring unknown config key {section}.{key}")

        return config


# Global configuration instance (CLI defaults only)
_config: Optional[PipelineConfig] = None


def get_config() -> PipelineConfig:
    """
    Get the global configuration instance.

    Creates a new instance on first call, returns cached instance thereafter.
    """
    global _config
    if _config is None:
        _config = PipelineConfig()
        _setup_logging(_config.logging)
    return _config


def reset_config():
    """Reset configuration to defaults (useful for testing)."""
    global _config
    _config = None


def _setup_logging(config: LoggingConfig):
    """Configure logging based on settings."""
    level = getattr(logging, config.level.upper(), logging.INFO)

    handlers = [logging.StreamHandler()]

    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file))

    logging.basicConfig(
        level=level,
        format=config.format,
        datefmt=config.date_format,
        handlers=handlers,
    )
