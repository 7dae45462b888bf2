"""
Recognition Module
==================

Frame scheduling and the per-mode recognition loops.
"""

from .scheduler import FrameHandle, FrameScheduler, AsyncioFrameScheduler
from .loops import RecognitionLoop, OCRRecognitionLoop, BarcodeRecognitionLoop

__all__ = [
    'FrameHandle',
    'FrameScheduler',
    'AsyncioFrameScheduler',
    'RecognitionLoop',
    'OCRRecognitionLoop',
    'BarcodeRecognitionLoop',
]
