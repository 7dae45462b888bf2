"""
Barcode Decoding
================

Single-shot VIN barcode decoding from an open camera stream using pyzbar.
VIN labels are printed as Code 39 (older and imported vehicles) or
Code 128.

A decode attempt that sees no barcode raises ``BarcodeNotFoundError``; that
is the normal case and the barcode loop retries silently.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from ..core.exceptions import BarcodeDecodeError, BarcodeNotFoundError
from ..core.vin_utils import clean_barcode_text, matches_general_pattern

logger = logging.getLogger(__name__)


@dataclass
class BarcodeResult:
    raw_text: str
    symbology: str = ""


class BarcodeDecoder(ABC):
    """Abstract single-shot decoder bound to one session."""

    name: str = "barcode"

    def initialize(self) -> None:
        """Load the decoding backend. Raises BarcodeDecodeError on failure."""

    @abstractmethod
    def decode_once(self, stream: Any) -> BarcodeResult:
        """
        Decode one frame from ``stream``.

        Raises:
            BarcodeNotFoundError: No barcode in the frame
            BarcodeDecodeError: Any other decoder failure
        """
        ...

    def reset(self) -> None:
        """Drop any per-session state."""


class PyzbarBarcodeDecoder(BarcodeDecoder):
    """
    ZBar decoder restricted to the linear symbologies used on VIN labels.

    Args:
        decode_fn: Replacement for ``pyzbar.pyzbar.decode`` (same signature)
        symbologies: ZBar symbol names to look for
    """

    name = "pyzbar"

    DEFAULT_SYMBOLOGIES = ("CODE39", "CODE128")

    def __init__(
        self,
        decode_fn: Optional[Callable[..., List[Any]]] = None,
        symbologies: Optional[List[str]] = None,
    ):
        self._decode = decode_fn
        self._symbologies = list(symbologies or self.DEFAULT_SYMBOLOGIES)
        self._symbols: Optional[List[Any]] = None
        self.attempts = 0

    def initialize(self) -> None:
        if self._decode is not None:
            return
        try:
            from pyzbar.pyzbar import decode, ZBarSymbol
        except (ImportError, OSError) as e:
            # OSError: the zbar shared library itself is missing
            raise BarcodeDecodeError(
                f"pyzbar is not available: {e}. Run: pip install pyzbar",
                decoder=self.name,
            ) from e

        self._decode = decode
        self._symbols = [getattr(ZBarSymbol, s) for s in self._symbologies]
        logger.info(f"Barcode decoder ready ({', '.join(self._symbologies)})")

    def decode_once(self, stream: Any) -> BarcodeResult:
        if self._decode is None:
            self.initialize()

        self.attempts += 1
        frame = stream.read_frame() if stream is not None else None
        if frame is None:
            raise BarcodeNotFoundError("No frame available")

        try:
            decoded = self._decode(frame.to_gray(), symbols=self._symbols)
        except Exception as e:
            raise BarcodeDecodeError(str(e), decoder=self.name) from e

        if not decoded:
            raise BarcodeNotFoundError()

        barcode, text = self._pick_vin_symbol(decoded)
        symbology = str(getattr(barcode, 'type', ''))
        logger.debug(f"Decoded {symbology} barcode: {text} ({len(decoded)} symbols in frame)")
        return BarcodeResult(raw_text=text, symbology=symbology)

    @staticmethod
    def _symbol_text(barcode: Any) -> str:
        data = barcode.data
        return data.decode('utf-8', errors='replace') if isinstance(data, bytes) else str(data)

    def _pick_vin_symbol(self, decoded: List[Any]) -> Tuple[Any, str]:
        """First symbol that reads as a VIN; labels often carry part numbers too."""
        for barcode in decoded:
            text = self._symbol_text(barcode)
            if matches_general_pattern(clean_barcode_text(text)):
                return barcode, text
        return decoded[0], self._symbol_text(decoded[0])

    def reset(self) -> None:
        self.attempts = 0
