"""
VIN Frame Preprocessor
======================

Normalizes a cropped scan band so the OCR engine sees dark-on-light or
light-on-dark VIN text as crisp, high-contrast strokes.

Stages run in a fixed order, each switchable through ``PreprocessConfig``:

1. Auto-invert based on mean luminance
2. Pre-sharpen (3x3 edge kernel, RGB)
3. Grayscale conversion (average / blue-channel / luminosity)
4. Contrast stretch (global or locally adaptive)
5. Unsharp mask
6. Morphology (dilate x2, erode x1)
7. Median noise reduction (two passes)
8. Final binarization

All stages are pure numpy/OpenCV transforms with no I/O.

Usage:
    from vin_capture.preprocessing import VINPreprocessor

    preprocessor = VINPreprocessor()
    processed = preprocessor.process(frame)

Author: VIN Capture Team
"""

import logging
from typing import Dict, Optional, Tuple, Union

import cv2
import numpy as np

from ..config import BlueEmphasis, ContrastLevel, GrayscaleMethod, PreprocessConfig
from ..core.frame import FrameBuffer

logger = logging.getLogger(__name__)


# (R, G, B) weights for the luminosity method
LUMINOSITY_WEIGHTS: Dict[BlueEmphasis, Tuple[float, float, float]] = {
    BlueEmphasis.ZERO: (0.33, 0.33, 0.33),
    BlueEmphasis.NORMAL: (0.2, 0.3, 0.5),
    BlueEmphasis.HIGH: (0.15, 0.15, 0.7),
    BlueEmphasis.VERY_HIGH: (0.1, 0.1, 0.8),
}

# (dark factor, light factor)
CONTRAST_PRESETS: Dict[ContrastLevel, Tuple[float, float]] = {
    ContrastLevel.NORMAL: (0.4, 1.6),
    ContrastLevel.HIGH: (0.3, 1.8),
    ContrastLevel.VERY_HIGH: (0.2, 2.0),
}

# Weights used in the left edge strip of the blue-channel method
EDGE_STRIP_WEIGHTS = (0.3, 0.3, 0.4)

SHARPEN_KERNEL = np.array([
    [-1, -1, -1],
    [-1, 9, -1],
    [-1, -1, -1],
], dtype=np.float32)


def _to_uint8(values: np.ndarray) -> np.ndarray:
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


class VINPreprocessor:
    """
    Fixed-order preprocessing pipeline for VIN scan bands.

    Example:
        preprocessor = VINPreprocessor()
        processed = preprocessor.process(frame)

        # Luminosity grayscale, no noise reduction
        config = PreprocessConfig(grayscale_method='luminosity', noise_reduction=False)
        preprocessor = VINPreprocessor(config=config)
    """

    def __init__(self, config: Optional[PreprocessConfig] = None):
        self.config = config or PreprocessConfig()

        size = self.config.morph_kernel_size
        self.morph_kernel = np.ones((size, size), np.uint8)
        self.window_kernel = np.ones((self.config.adaptive_window, self.config.adaptive_window), np.uint8)

        logger.debug(
            f"VINPreprocessor initialized with grayscale={self.config.grayscale_method.value}, "
            f"contrast={self.config.contrast.value}, kernel={size}"
        )

    def process(self, frame: Union[FrameBuffer, np.ndarray]) -> Union[FrameBuffer, np.ndarray]:
        """
        Process an RGBA frame for OCR.

        Args:
            frame: FrameBuffer or RGBA uint8 array

        Returns:
            Same type as the input: RGBA with the processed gray value in
            R, G and B and the input alpha preserved

        Raises:
            ValueError: If the frame is empty
        """
        if isinstance(frame, FrameBuffer):
            return FrameBuffer(self.process_array(frame.data))
        return self.process_array(frame)

    def process_array(self, rgba: np.ndarray) -> np.ndarray:
        if rgba is None or rgba.size == 0:
            raise ValueError("Input frame is empty or None")

        cfg = self.config
        alpha = rgba[..., 3].copy()
        rgb = rgba[..., :3].copy()

        rgb = self.auto_invert(rgb)

        if cfg.edge_enhancement:
            rgb = self.pre_sharpen(rgb)

        gray = self.to_grayscale(rgb)
        gray = self.stretch_contrast(gray)

        if cfg.edge_enhancement:
            gray = self.unsharp_mask(gray)

        gray = self.morphology(gray)

        if cfg.noise_reduction:
            gray = self.reduce_noise(gray)

        gray = self.binarize(gray)

        return np.dstack([gray, gray, gray, alpha])

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def auto_invert(self, rgb: np.ndarray) -> np.ndarray:
        """Invert RGB at most once, depending on mean luminance."""
        luminance = float(rgb.mean())
        dark = luminance < self.config.luminance_threshold

        if (dark and self.config.invert_light_text) or (not dark and self.config.invert_dark_text):
            logger.debug(f"Inverting frame (mean luminance {luminance:.1f})")
            return 255 - rgb
        return rgb

    def pre_sharpen(self, rgb: np.ndarray) -> np.ndarray:
        # uint8 in, uint8 out: filter2D saturates
        return cv2.filter2D(rgb, -1, SHARPEN_KERNEL, borderType=cv2.BORDER_REPLICATE)

    def to_grayscale(self, rgb: np.ndarray) -> np.ndarray:
        method = self.config.grayscale_method
        r, g, b = (rgb[..., i].astype(np.float32) for i in range(3))

        if method == GrayscaleMethod.AVERAGE:
            gray = (r + g + b) / 3.0

        elif method == GrayscaleMethod.BLUE_CHANNEL:
            gray = np.maximum(b - (r + g) / 3.0, 0.0)
            # The left strip usually holds the plate edge, not blue-printed text
            width = rgb.shape[1]
            strip = np.arange(width) < width * self.config.blue_channel_edge_ratio
            wr, wg, wb = EDGE_STRIP_WEIGHTS
            edge = wr * r + wg * g + wb * b
            gray = np.where(strip[np.newaxis, :], edge, gray)

        else:
            wr, wg, wb = LUMINOSITY_WEIGHTS[self.config.blue_emphasis]
            gray = wr * r + wg * g + wb * b

        return _to_uint8(gray)

    def stretch_contrast(self, gray: np.ndarray) -> np.ndarray:
        dark, light = CONTRAST_PRESETS[self.config.contrast]
        values = gray.astype(np.float32)

        if self.config.adaptive_contrast:
            # Out-of-frame neighbours are ignored by erode/dilate's default border
            local_min = cv2.erode(gray, self.window_kernel)
            local_max = cv2.dilate(gray, self.window_kernel)
            local_contrast = (local_max.astype(np.float32) - local_min.astype(np.float32)) / 255.0
            multiplier = np.maximum(1.2, 1.8 - local_contrast)
        else:
            multiplier = 1.0

        stretched = np.where(
            values < self.config.luminance_threshold,
            values * dark * multiplier,
            np.minimum(255.0, values * light * multiplier),
        )
        return _to_uint8(stretched)

    def unsharp_mask(self, gray: np.ndarray) -> np.ndarray:
        radius = self.config.unsharp_radius
        ksize = 2 * radius + 1
        values = gray.astype(np.float32)

        blurred = cv2.GaussianBlur(values, (ksize, ksize), radius, borderType=cv2.BORDER_REPLICATE)
        diff = values - blurred

        sharpened = np.where(
            np.abs(diff) > self.config.unsharp_threshold,
            values + self.config.unsharp_amount * diff,
            values,
        )
        return _to_uint8(sharpened)

    def morphology(self, gray: np.ndarray) -> np.ndarray:
        """Dilate twice, then erode once."""
        if self.config.morph_kernel_size == 1:
            return gray
        dilated = cv2.dilate(gray, self.morph_kernel, iterations=2)
        return cv2.erode(dilated, self.morph_kernel, iterations=1)

    def reduce_noise(self, gray: np.ndarray) -> np.ndarray:
        return cv2.medianBlur(cv2.medianBlur(gray, 3), 3)

    def binarize(self, gray: np.ndarray) -> np.ndarray:
        out = gray.copy()
        out[gray > self.config.binarize_high] = 255
        out[gray < self.config.binarize_low] = 0
        return out


def preprocess(
    frame: Union[FrameBuffer, np.ndarray],
    config: Optional[PreprocessConfig] = None,
) -> Union[FrameBuffer, np.ndarray]:
    """
    Quick preprocessing function.

    Args:
        frame: FrameBuffer or RGBA uint8 array
        config: Preprocessing configuration (defaults if None)

    Returns:
        Preprocessed frame of the same type
    """
    return VINPreprocessor(config=config).process(frame)
