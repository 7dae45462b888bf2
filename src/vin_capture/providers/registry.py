"""
Registry Validation
===================

Final acceptance check for OCR candidates. A registry validator answers one
question: is this 17-character string a VIN the vehicle registry knows?

- NHTSARegistryValidator: NHTSA vPIC ``decodevin`` endpoint over HTTP
- CheckDigitValidator: offline ISO 3779 check digit

A rejected candidate is never deleted; the loop simply keeps scanning.
"""

import time
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests

from ..config import RegistryConfig
from ..core.exceptions import RegistryError
from ..core.vin_utils import matches_general_pattern, validate_checksum

logger = logging.getLogger(__name__)


class RegistryValidator(ABC):
    """Abstract VIN registry validator."""

    name: str = "registry"

    @abstractmethod
    def validate(self, vin: str) -> bool:
        ...

    def close(self) -> None:
        pass


class NHTSARegistryValidator(RegistryValidator):
    """
    Validate against NHTSA vPIC.

    A VIN counts as known when the decode returns Make, Model and Model Year.
    Transient network failures are retried with exponential backoff; once
    retries are exhausted the candidate is treated as rejected.
    """

    name = "nhtsa"

    REQUIRED_VARIABLES = ("Make", "Model", "Model Year")
    RETRYABLE = (requests.ConnectionError, requests.Timeout)

    def __init__(self, config: Optional[RegistryConfig] = None, session: Optional[requests.Session] = None):
        self.config = config or RegistryConfig()
        if self.config.offline:
            raise RegistryError("Registry is configured offline", registry=self.name)
        self._session = session or requests.Session()

    def _url(self, vin: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{vin}"

    def validate(self, vin: str) -> bool:
        if not matches_general_pattern(vin):
            return False

        try:
            payload = self._fetch(vin)
        except requests.RequestException as e:
            logger.warning(f"NHTSA lookup failed for {vin}: {e}")
            return False

        return self._is_known(payload)

    def _fetch(self, vin: str) -> Dict[str, Any]:
        max_retries = max(1, self.config.max_retries)

        for attempt in range(max_retries):
            try:
                response = self._session.get(
                    self._url(vin),
                    params={"format": "json"},
                    timeout=self.config.timeout,
                )
                response.raise_for_status()
                return response.json()
            except self.RETRYABLE as exc:
                if attempt >= max_retries - 1:
                    raise
                sleep_for = self.config.retry_delay * (2 ** attempt)
                logger.warning(
                    "Retrying NHTSA lookup (attempt %d/%d, sleep %.2fs): %s",
                    attempt + 1,
                    max_retries,
                    sleep_for,
                    exc,
                )
                if sleep_for > 0:
                    time.sleep(sleep_for)

        raise requests.RequestException("NHTSA lookup failed without response")

    def _is_known(self, payload: Any) -> bool:
        if not isinstance(payload, dict):
            return False
        results: List[Dict[str, Any]] = payload.get("Results") or []
        if not isinstance(results, list):
            return False

        values = {
            r.get("Variable"): r.get("Value")
            for r in results
            if isinstance(r, dict)
        }
        return all(values.get(var) for var in self.REQUIRED_VARIABLES)

    def close(self) -> None:
        self._session.close()


class CheckDigitValidator(RegistryValidator):
    """Offline validation: general pattern plus the position 9 check digit."""

    name = "check-digit"

    def validate(self, vin: str) -> bool:
        return matches_general_pattern(vin) and validate_checksum(vin)


def create_validator(config: Optional[RegistryConfig] = None) -> RegistryValidator:
    """NHTSA validator, or the check digit validator when offline."""
    config = config or RegistryConfig()
    if config.offline:
        return CheckDigitValidator()
    return NHTSARegistryValidator(config)
