"""
VIN Utilities - Single Source of Truth
======================================

Constants, patterns and text correction for VIN capture.

Two correctors live here and they are deliberately NOT unified:

- ``aggressive_correct``: used while gating OCR output inside the recognition
  loop. Rewrites confusable letters everywhere, including the WMI.
- ``correct_vin`` / ``PositionAwareCorrector``: used for display and final
  acceptance of manual input. Repairs malformed WMI prefixes and leaves
  positions 0-1 untouched by the substitution map.

Author: VIN Capture Team
"""

import re
import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple

logger = logging.getLogger(__name__)


# =============================================================================
# VIN CONSTANTS
# =============================================================================

class VINConstants:
    """Immutable VIN specification constants per ISO 3779 / NHTSA."""

    LENGTH: int = 17

    # Valid characters (I, O, Q excluded to avoid confusion with 1, 0)
    VALID_CHARS: FrozenSet[str] = frozenset("0123456789ABCDEFGHJKLMNPRSTUVWXYZ")
    INVALID_CHARS: FrozenSet[str] = frozenset("IOQ")

    # What the OCR engine is allowed to emit. I, O and Q stay in so the
    # correctors can map them instead of the engine guessing something else.
    OCR_WHITELIST: str = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"

    # First characters we accept as a country/region code
    COUNTRY_CODES: FrozenSet[str] = frozenset("123459JKLSVWYZ")
    NORTH_AMERICAN_CODES: FrozenSet[str] = frozenset("12345")

    CHECK_DIGIT_POSITION: int = 9  # 1-indexed

    # Checksum weights by position (NHTSA standard)
    CHECKSUM_WEIGHTS: Tuple[int, ...] = (8, 7, 6, 5, 4, 3, 2, 10, 0, 9, 8, 7, 6, 5, 4, 3, 2)

    # Character to value mapping for checksum (ISO 3779)
    CHAR_VALUES: Dict[str, int] = {
        'A': 1, 'B': 2, 'C': 3, 'D': 4, 'E': 5, 'F': 6, 'G': 7, 'H': 8,
        'J': 1, 'K': 2, 'L': 3, 'M': 4, 'N': 5, 'P': 7, 'R': 9,
        'S': 2, 'T': 3, 'U': 4, 'V': 5, 'W': 6, 'X': 7, 'Y': 8, 'Z': 9,
        '0': 0, '1': 1, '2': 2, '3': 3, '4': 4, '5': 5, '6': 6, '7': 7, '8': 8, '9': 9
    }


VIN_LENGTH = VINConstants.LENGTH
VIN_VALID_CHARS = VINConstants.VALID_CHARS
VIN_INVALID_CHARS = VINConstants.INVALID_CHARS


# =============================================================================
# PATTERNS
# =============================================================================

VIN_GENERAL_PATTERN = re.compile(r'^[A-HJ-NPR-Z0-9]{17}$')
NORTH_AMERICAN_PATTERN = re.compile(r'^[1-5][A-HJ-NPR-Z0-9]{16}$')
MANUFACTURER_PATTERN = re.compile(r'^.[A-HJ-NPR-Z]')

# First 17-char run of VIN alphabet inside a longer string
_VIN_RUN = re.compile(r'[A-HJ-NPR-Z0-9]{17}')
_NON_VIN_CHARS = re.compile(r'[^A-HJ-NPR-Z0-9]')
_NON_ALNUM = re.compile(r'[^A-Z0-9]')
_WHITESPACE = re.compile(r'\s+')


def matches_general_pattern(text: str) -> bool:
    """17 characters, all from the VIN alphabet."""
    return bool(VIN_GENERAL_PATTERN.match(text))


def matches_north_american_pattern(text: str) -> bool:
    """
    North American VIN: country code 1-5 and an alphabetic manufacturer
    character in the second position.
    """
    return bool(NORTH_AMERICAN_PATTERN.match(text)) and bool(MANUFACTURER_PATTERN.match(text))


# =============================================================================
# AGGRESSIVE CORRECTOR (OCR gating)
# =============================================================================

# Applied to every position, WMI included
AGGRESSIVE_RULES: Tuple[Tuple[str, str], ...] = (
    ('oO', '0'),
    ('iIl', '1'),
    ('sS', '5'),
    ('zZ', '2'),
    ('bB', '8'),
    ('gG', '6'),
)

_AGGRESSIVE_TABLE = str.maketrans({
    src: dst for sources, dst in AGGRESSIVE_RULES for src in sources
})


def aggressive_correct(text: str) -> str:
    """
    Unconditional confusable mapping used inside the OCR loop.

    Maps O/I/l/S/Z/B/G to digits across the whole string, removes whitespace,
    uppercases and returns the first 17-character run of VIN alphabet if one
    exists. Otherwise the whole corrected string is returned so the caller
    can still judge its length.

    Examples:
        >>> aggressive_correct("1G1JC 5444R7252367")
        '161JC5444R7252367'
        >>> aggressive_correct("io")
        '10'
    """
    if not text:
        return ''

    corrected = text.translate(_AGGRESSIVE_TABLE)
    corrected = _WHITESPACE.sub('', corrected).upper()

    match = _VIN_RUN.search(corrected)
    return match.group(0) if match else corrected


# =============================================================================
# POSITION-AWARE CORRECTOR (display / final acceptance)
# =============================================================================

@dataclass
class CandidateVin:
    """A corrected VIN candidate and the pattern checks it passed."""
    vin: str
    raw_text: str = ''
    matches_general_pattern: bool = False
    matches_north_american_pattern: bool = False
    corrections: List[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.matches_general_pattern

    def to_dict(self) -> Dict:
        return {
            'vin': self.vin,
            'raw_text': self.raw_text,
            'matches_general_pattern': self.matches_general_pattern,
            'matches_north_american_pattern': self.matches_north_american_pattern,
            'corrections': list(self.corrections),
        }


class PositionAwareCorrector:
    """
    Rule-based VIN correction that respects the WMI.

    Processing steps:
    1. Normalize (uppercase, drop whitespace and delimiters)
    2. Repair known malformed WMI prefixes
    3. Strip characters outside the VIN alphabet
    4. Substitute confusables in positions 2-16 only
    5. Pick the best of corrected/original by pattern preference

    Thread Safety: instances hold no mutable state after construction.
    """

    # Whole-prefix repairs, checked before anything else
    MALFORMED_WMI_PREFIXES: Dict[str, str] = {
        'R1G1': '1G1',
    }

    # First character misreads that are not valid country codes
    FIRST_CHAR_RULES: Dict[str, str] = {
        'R': '1',
        'I': '1',
        'O': '0',
        'Q': '0',
    }

    # Positions 2-16; the country and manufacturer codes are exempt
    SUBSTITUTION_RULES: Dict[str, str] = {
        'S': '5',
        'Z': '2',
        'B': '8',
        'G': '6',
    }

    EXEMPT_POSITIONS: int = 2

    def __init__(self, substitution_rules: Optional[Dict[str, str]] = None):
        self.substitution_rules = dict(self.SUBSTITUTION_RULES)
        if substitution_rules:
            self.substitution_rules.update(substitution_rules)

    def correct(self, raw_text: str) -> CandidateVin:
        """
        Apply position-aware corrections to raw OCR (or typed) text.

        Args:
            raw_text: Raw recognizer output or manual input

        Returns:
            CandidateVin with the preferred string and its pattern flags
        """
        corrections: List[str] = []

        text = _NON_ALNUM.sub('', (raw_text or '').upper())

        repaired = self._repair_wmi(text)
        if repaired != text:
            corrections.append(f"WMI repair: '{text}' -> '{repaired}'")

        original = _NON_VIN_CHARS.sub('', repaired)
        if original != repaired:
            corrections.append(f"Stripped invalid characters: '{repaired}' -> '{original}'")

        corrected = self._apply_substitutions(original)
        if corrected != original:
            corrections.append(f"Position corrections: '{original}' -> '{corrected}'")

        vin = self._select(corrected, original)

        return CandidateVin(
            vin=vin,
            raw_text=raw_text or '',
            matches_general_pattern=matches_general_pattern(vin),
            matches_north_american_pattern=matches_north_american_pattern(vin),
            corrections=corrections,
        )

    def _repair_wmi(self, text: str) -> str:
        """Fix country/manufacturer misreads in the first two characters."""
        for bad_prefix, good_prefix in self.MALFORMED_WMI_PREFIXES.items():
            if text.startswith(bad_prefix):
                text = good_prefix + text[len(bad_prefix):]
                break

        if text and text[0] not in VINConstants.COUNTRY_CODES:
            replacement = self.FIRST_CHAR_RULES.get(text[0])
            if replacement is not None:
                text = replacement + text[1:]

        if len(text) >= 2 and text[0] == '1' and text[1].isdigit():
            text = text[0] + 'G' + text[2:]

        return text

    def _apply_substitutions(self, text: str) -> str:
        head = text[:self.EXEMPT_POSITIONS]
        tail = text[self.EXEMPT_POSITIONS:VIN_LENGTH]
        rest = text[VIN_LENGTH:]
        tail = ''.join(self.substitution_rules.get(c, c) for c in tail)
        return head + tail + rest

    @staticmethod
    def _select(corrected: str, original: str) -> str:
        # Prefer North American VINs, then the general format
        if matches_north_american_pattern(corrected):
            return corrected
        if matches_north_american_pattern(original):
            return original
        if matches_general_pattern(corrected):
            return corrected
        if matches_general_pattern(original):
            return original
        return original.upper()


_default_corrector = PositionAwareCorrector()


def correct_vin(raw_text: str) -> CandidateVin:
    """Position-aware correction with the default rule set."""
    return _default_corrector.correct(raw_text)


def get_corrector() -> PositionAwareCorrector:
    """Get the default position-aware corrector instance."""
    return _default_corrector


# =============================================================================
# BARCODE TEXT
# =============================================================================

def clean_barcode_text(text: str) -> str:
    """
    Normalize a decoded VIN barcode.

    Code 39 labels on imported vehicles often carry a leading 'I' import
    marker, giving 18 characters; that marker is removed.
    """
    cleaned = (text or '').strip()
    if len(cleaned) == VIN_LENGTH + 1 and cleaned.startswith('I'):
        logger.debug("Removing leading import marker from barcode '%s'", cleaned)
        cleaned = cleaned[1:]
    return _WHITESPACE.sub('', cleaned).upper()


# =============================================================================
# CHECKSUM
# =============================================================================

def calculate_check_digit(vin: str) -> Optional[str]:
    """
    Calculate the expected check digit (position 9) for a VIN.

    The check digit is calculated by:
    1. Assigning numeric values to each character
    2. Multiplying by position weights
    3. Summing and taking mod 11
    4. Result 10 becomes 'X'

    Args:
        vin: 17-character VIN (check digit position will be ignored)

    Returns:
        Expected check digit ('0'-'9' or 'X'), or None if calculation fails
    """
    if len(vin) != VIN_LENGTH:
        return None

    total = 0
    for i, char in enumerate(vin.upper()):
        if i == VINConstants.CHECK_DIGIT_POSITION - 1:
            continue
        value = VINConstants.CHAR_VALUES.get(char)
        if value is None:
            return None
        total += value * VINConstants.CHECKSUM_WEIGHTS[i]

    remainder = total % 11
    return 'X' if remainder == 10 else str(remainder)


def validate_checksum(vin: str) -> bool:
    """
    Validate VIN checksum at position 9.

    Args:
        vin: 17-character VIN to validate

    Returns:
        True if checksum is valid, False otherwise
    """
    expected = calculate_check_digit(vin)
    if expected is None:
        return False
    return vin[VINConstants.CHECK_DIGIT_POSITION - 1].upper() == expected


def validate_vin_format(vin: str) -> bool:
    """
    Quick check if VIN has valid format (length and characters).

    Does NOT check checksum.
    """
    return matches_general_pattern((vin or '').upper().strip())
