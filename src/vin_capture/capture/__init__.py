"""
Camera Capture Module
=====================

Camera source abstraction, OpenCV implementation and the per-session
capture controller.
"""

from .camera import (
    CameraConstraints,
    CameraSource,
    CameraStream,
    VideoTrack,
    OpenCVCameraSource,
    OpenCVCameraStream,
)
from .controller import CaptureController, crop_scan_band

__all__ = [
    'CameraConstraints',
    'CameraSource',
    'CameraStream',
    'VideoTrack',
    'OpenCVCameraSource',
    'OpenCVCameraStream',
    'CaptureController',
    'crop_scan_band',
]
