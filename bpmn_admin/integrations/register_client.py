"""
Register Client for BPMN Admin

HTTP client for the register service. Import validation fetches the list of
register keys once per import to check every keyId a schema refers to.

Usage:
    client = RegisterClient(base_url="http://register:8080")
    keys = client.get_keys(limit=100000)
    key_ids = [key["id"] for key in keys["data"]]
"""

import logging
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..core.circuit_breaker import CircuitBreaker
from ..core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

SERVICE_NAME = "register"


class RegisterClient:
    """
    Client for the register service.

    Calls are guarded by a circuit breaker so that a down register service
    fails imports fast instead of waiting for the timeout every time.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: int = 10,
        max_retries: int = 3,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        """
        Initialize register client.

        Args:
            base_url: Base URL of the register service
            timeout: Request timeout in seconds (default: 10)
            max_retries: Max retry attempts for failed requests (default: 3)
            circuit_breaker: Breaker shared by every call of this client
        """
        self.base_url = (base_url or "http://localhost:8080").rstrip("/")
        self.timeout = timeout
        self.circuit_breaker = circuit_breaker or CircuitBreaker(name=SERVICE_NAME)

        self.session = requests.Session()
        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"]
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        logger.info(f"Register client initialized with base_url: {self.base_url}")

    def get_keys(self, limit: int = 100000) -> Dict[str, Any]:
        """
        List register keys.

        Args:
            limit: Max number of keys

        Returns:
            {"data": [{"id": 1, ...}, ...], ...}

        Raises:
            ExternalServiceError: If the service is unavailable, fails or the
                circuit breaker is open
        """
        if self.circuit_breaker.is_open():
            raise ExternalServiceError("Register service unavailable (circuit breaker is open)", service=SERVICE_NAME)

        self.circuit_breaker.record_attempt()

        try:
            response = self.session.get(
                f"{self.base_url}/keys",
                params={"limit": limit},
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()

        except requests.exceptions.Timeout as e:
            self.circuit_breaker.record_failure()
            logger.error(f"Register service timeout after {self.timeout}s")
            raise ExternalServiceError("Register service timeout", service=SERVICE_NAME) from e

        except requests.exceptions.ConnectionError as e:
            self.circuit_breaker.record_failure()
            logger.error(f"Failed to connect to register service at {self.base_url}")
            raise ExternalServiceError(f"Register service unavailable at {self.base_url}", service=SERVICE_NAME) from e

        except requests.exceptions.HTTPError as e:
            self.circuit_breaker.record_failure()
            logger.error(f"Register keys request failed with HTTP {e.response.status_code}")
            raise ExternalServiceError(f"Register keys request failed: {e.response.text}", service=SERVICE_NAME) from e

        except ValueError as e:
            self.circuit_breaker.record_failure()
            logger.error(f"Register service returned invalid JSON: {e}")
            raise ExternalServiceError("Register service returned invalid JSON", service=SERVICE_NAME) from e

        except requests.exceptions.RequestException as e:
            # Retries exhausted (RetryError) and other transport errors
            self.circuit_breaker.record_failure()
            logger.error(f"Register keys request failed: {e}")
            raise ExternalServiceError(f"Register keys request failed: {e}", service=SERVICE_NAME) from e

        self.circuit_breaker.record_success()

        count = len(data.get("data") or []) if isinstance(data, dict) else 0
        logger.info(f"Fetched {count} register keys", extra={"register_keys": count})
        return data if isinstance(data, dict) else {"data": []}
