"""
Tests for the vin-scan CLI
==========================

Run with: pytest tests/test_cli.py -v
"""

import json

import cv2
import numpy as np
import pytest

from vin_capture.cli import main
from vin_capture.config import reset_config


@pytest.fixture(autouse=True)
def fresh_config():
    reset_config()
    yield
    reset_config()


class TestCLI:
    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "vin-scan" in capsys.readouterr().out

    def test_correct(self, capsys):
        assert main(["correct", "R1G1JC5444R7252367"]) == 0
        output = json.loads(capsys.readouterr().out)

        assert output["position_aware"]["vin"] == "1G1JC5444R7252367"
        assert output["checksum_valid"] is True

    def test_recognize_missing_image(self, tmp_path, capsys):
        assert main(["recognize", str(tmp_path / "missing.png")]) == 1
        assert "Image not found" in capsys.readouterr().out

    def test_preprocess_writes_band(self, tmp_path):
        source = tmp_path / "plate.png"
        output = tmp_path / "band.png"
        cv2.imwrite(str(source), np.full((200, 400, 3), 220, dtype=np.uint8))

        assert main(["preprocess", str(source), str(output), "--band"]) == 0

        written = cv2.imread(str(output))
        assert written.shape == (24, 240, 3)
        assert set(np.unique(written)) <= {0, 255} | set(range(75, 181))
