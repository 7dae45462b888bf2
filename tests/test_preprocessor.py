"""
Tests for the VIN Frame Preprocessor
====================================

Stage-level checks on small synthetic buffers plus whole-pipeline
invariants.

Run with: pytest tests/test_preprocessor.py -v
"""

import numpy as np
import pytest

from vin_capture.config import PreprocessConfig
from vin_capture.core.exceptions import ConfigurationError
from vin_capture.core.frame import FrameBuffer
from vin_capture.preprocessing import VINPreprocessor, preprocess


def solid_rgb(r, g, b, width=20, height=10):
    rgb = np.zeros((height, width, 3), dtype=np.uint8)
    rgb[...] = (r, g, b)
    return rgb


@pytest.fixture
def random_rgba():
    rng = np.random.default_rng(42)
    data = rng.integers(0, 256, (60, 240, 4), dtype=np.uint8)
    data[..., 3] = 255
    return data


# =============================================================================
# WHOLE PIPELINE
# =============================================================================

class TestPipeline:
    """Invariants of the full stage sequence."""

    def test_binarization_bounds(self, random_rgba):
        out = VINPreprocessor().process(random_rgba)
        gray = out[..., 0]
        in_band = (gray >= 75) & (gray <= 180)
        assert np.all((gray == 0) | (gray == 255) | in_band)

    @pytest.mark.parametrize("method", ["average", "blue-channel", "luminosity"])
    def test_output_is_gray_rgba(self, random_rgba, method):
        out = VINPreprocessor(PreprocessConfig(grayscale_method=method)).process(random_rgba)
        assert out.shape == random_rgba.shape
        assert out.dtype == np.uint8
        assert np.array_equal(out[..., 0], out[..., 1])
        assert np.array_equal(out[..., 1], out[..., 2])

    def test_alpha_preserved(self, random_rgba):
        random_rgba[..., 3] = 77
        out = VINPreprocessor().process(random_rgba)
        assert np.all(out[..., 3] == 77)

    def test_frame_buffer_in_frame_buffer_out(self, random_rgba):
        frame = FrameBuffer(random_rgba)
        out = preprocess(frame)
        assert isinstance(out, FrameBuffer)
        assert (out.width, out.height) == (frame.width, frame.height)

    def test_input_not_mutated(self, random_rgba):
        original = random_rgba.copy()
        VINPreprocessor().process(random_rgba)
        assert np.array_equal(random_rgba, original)

    def test_empty_frame_rejected(self):
        with pytest.raises(ValueError):
            VINPreprocessor().process(np.zeros((0, 0, 4), dtype=np.uint8))

    def test_all_stages_disabled(self):
        config = PreprocessConfig(
            grayscale_method="average",
            contrast="normal",
            morph_kernel_size=1,
            invert_light_text=False,
            edge_enhancement=False,
            noise_reduction=False,
            adaptive_contrast=False,
        )
        rgba = np.zeros((4, 4, 4), dtype=np.uint8)
        rgba[..., :3] = 100
        out = VINPreprocessor(config).process(rgba)
        # 100 * 0.4 = 40, then binarized to 0
        assert np.all(out[..., 0] == 0)


# =============================================================================
# STAGES
# =============================================================================

class TestAutoInvert:
    def test_dark_frame_inverted_for_light_text(self):
        pre = VINPreprocessor(PreprocessConfig(invert_light_text=True))
        assert np.all(pre.auto_invert(solid_rgb(10, 10, 10)) == 245)

    def test_dark_frame_untouched_when_disabled(self):
        pre = VINPreprocessor(PreprocessConfig(invert_light_text=False))
        assert np.all(pre.auto_invert(solid_rgb(10, 10, 10)) == 10)

    def test_light_frame_inverted_for_dark_text(self):
        pre = VINPreprocessor(PreprocessConfig(invert_light_text=True, invert_dark_text=True))
        # Mean exactly 128 counts as light
        assert np.all(pre.auto_invert(solid_rgb(128, 128, 128)) == 127)

    def test_light_frame_untouched_by_default(self):
        pre = VINPreprocessor()
        assert np.all(pre.auto_invert(solid_rgb(200, 200, 200)) == 200)


class TestGrayscale:
    def test_average(self):
        pre = VINPreprocessor(PreprocessConfig(grayscale_method="average"))
        assert np.all(pre.to_grayscale(solid_rgb(30, 60, 90)) == 60)

    def test_blue_channel_with_left_strip(self):
        pre = VINPreprocessor(PreprocessConfig(grayscale_method="blue-channel"))
        gray = pre.to_grayscale(solid_rgb(30, 30, 200, width=20))
        # Left 15% of 20 columns = columns 0-2
        assert np.all(gray[:, :3] == 98)    # 0.3*30 + 0.3*30 + 0.4*200
        assert np.all(gray[:, 3:] == 180)   # 200 - 60/3

    def test_blue_channel_clamps_at_zero(self):
        pre = VINPreprocessor(PreprocessConfig(grayscale_method="blue-channel"))
        gray = pre.to_grayscale(solid_rgb(200, 200, 10, width=20))
        assert np.all(gray[:, 3:] == 0)

    @pytest.mark.parametrize("emphasis,expected", [
        ("zero", 33),
        ("normal", 50),
        ("high", 70),
        ("very-high", 80),
    ])
    def test_luminosity_blue_emphasis(self, emphasis, expected):
        pre = VINPreprocessor(PreprocessConfig(grayscale_method="luminosity", blue_emphasis=emphasis))
        assert np.all(pre.to_grayscale(solid_rgb(0, 0, 100)) == expected)


class TestContrast:
    @pytest.mark.parametrize("level,value,expected", [
        ("normal", 100, 40),
        ("normal", 150, 240),
        ("high", 100, 30),
        ("very-high", 100, 20),
        ("very-high", 128, 255),
    ])
    def test_global_presets(self, level, value, expected):
        pre = VINPreprocessor(PreprocessConfig(contrast=level, adaptive_contrast=False))
        gray = np.full((6, 6), value, dtype=np.uint8)
        assert np.all(pre.stretch_contrast(gray) == expected)

    def test_adaptive_flat_region_uses_max_multiplier(self):
        # Local contrast 0 -> multiplier 1.8
        pre = VINPreprocessor(PreprocessConfig(contrast="very-high", adaptive_contrast=True))
        gray = np.full((6, 6), 100, dtype=np.uint8)
        assert np.all(pre.stretch_contrast(gray) == 36)

    def test_adaptive_high_contrast_uses_floor(self):
        # Local contrast 1 -> multiplier max(1.2, 0.8) = 1.2
        pre = VINPreprocessor(PreprocessConfig(contrast="normal", adaptive_contrast=True))
        gray = np.full((5, 5), 100, dtype=np.uint8)
        gray[0, 0] = 0
        gray[4, 4] = 255
        out = pre.stretch_contrast(gray)
        assert out[2, 2] == 48  # 100 * 0.4 * 1.2


class TestEdgesAndMorphology:
    def test_unsharp_mask_leaves_flat_image(self):
        pre = VINPreprocessor()
        gray = np.full((8, 8), 90, dtype=np.uint8)
        assert np.array_equal(pre.unsharp_mask(gray), gray)

    def test_pre_sharpen_leaves_flat_image(self):
        pre = VINPreprocessor()
        rgb = solid_rgb(40, 80, 120)
        assert np.array_equal(pre.pre_sharpen(rgb), rgb)

    def test_morphology_closes_dark_speck(self):
        pre = VINPreprocessor(PreprocessConfig(morph_kernel_size=3))
        gray = np.full((9, 9), 255, dtype=np.uint8)
        gray[4, 4] = 0
        assert np.all(pre.morphology(gray) == 255)

    def test_morphology_kernel_one_is_identity(self):
        pre = VINPreprocessor(PreprocessConfig(morph_kernel_size=1))
        gray = np.arange(81, dtype=np.uint8).reshape(9, 9)
        assert np.array_equal(pre.morphology(gray), gray)

    def test_median_removes_salt(self):
        pre = VINPreprocessor()
        gray = np.zeros((9, 9), dtype=np.uint8)
        gray[4, 4] = 255
        assert np.all(pre.reduce_noise(gray) == 0)

    def test_binarize(self):
        pre = VINPreprocessor()
        gray = np.array([[0, 74, 75, 180, 181, 255]], dtype=np.uint8)
        assert pre.binarize(gray).tolist() == [[0, 0, 75, 180, 255, 255]]


class TestPreprocessConfig:
    def test_defaults(self):
        config = PreprocessConfig()
        assert config.grayscale_method.value == "blue-channel"
        assert config.blue_emphasis.value == "very-high"
        assert config.contrast.value == "very-high"
        assert config.morph_kernel_size == 3
        assert config.invert_light_text is True
        assert config.invert_dark_text is False

    def test_invalid_kernel(self):
        with pytest.raises(ConfigurationError):
            PreprocessConfig(morph_kernel_size=4)

    def test_invalid_enum(self):
        with pytest.raises(ConfigurationError):
            PreprocessConfig(grayscale_method="sepia")

    def test_from_settings_blob(self):
        config = PreprocessConfig.from_settings({
            "grayscaleMethod": "luminosity",
            "blueEmphasis": "high",
            "morphKernelSize": "5",
            "autoInvert": False,
            "unknownKey": 1,
        })
        assert config.grayscale_method.value == "luminosity"
        assert config.blue_emphasis.value == "high"
        assert config.morph_kernel_size == 5
        assert config.invert_light_text is False
