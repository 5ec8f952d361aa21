"""
Base Platform Adapter

Every platform is reached through one isolated remote function. Adapters
share the call mechanics here and only differ in request body and
vendor-shape normalization.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional
import time

import httpx

from app.config import get_settings
from app.connectors.metrics import FetchError, FetchResult, NormalizedMetrics, Platform
from app.utils.helpers import to_number
from app.utils.logger import log

settings = get_settings()


class BasePlatformAdapter(ABC):
    """
    Base class for all platform adapters

    fetch() never raises: transport failures, non-2xx responses and payloads
    carrying an ``error`` field all come back as a FetchError value.
    """

    platform: Platform
    function_name: str
    kind: str

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Args:
            base_url: Root URL of the platform functions
            service_key: Bearer key sent to the functions
            timeout: Per-call timeout in seconds
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.base_url = (base_url or settings.functions_base_url).rstrip("/")
        self.service_key = service_key if service_key is not None else settings.functions_service_key
        self.timeout = timeout or settings.adapter_timeout_seconds
        self.transport = transport

    @property
    def url(self) -> str:
        return f"{self.base_url}/{self.function_name}"

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.service_key:
            headers["Authorization"] = f"Bearer {self.service_key}"
        return headers

    def build_request_body(self, client_id: str, start_date: str, end_date: str) -> Dict[str, Any]:
        """Request body sent to the platform function"""
        return {"clientId": client_id, "startDate": start_date, "endDate": end_date}

    @abstractmethod
    def normalize(self, payload: Dict[str, Any]) -> NormalizedMetrics:
        """Translate the vendor payload into a metrics variant"""
        pass

    async def fetch(self, client_id: str, start_date: str, end_date: str) -> FetchResult:
        """
        Fetch and normalize one platform's metrics for a client

        Returns:
            A NormalizedMetrics variant on success, FetchError otherwise
        """
        started = time.time()
        body = self.build_request_body(client_id, start_date, end_date)
        log.info(f"Fetching {self.platform.value} data for client {client_id} ({start_date} to {end_date})")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.url, json=body, headers=self._get_headers())
        except httpx.TimeoutException:
            return self._failure(f"Timed out after {self.timeout:.0f}s")
        except httpx.HTTPError as e:
            return self._failure(f"Request failed: {str(e) or type(e).__name__}")

        if not response.is_success:
            return self._failure(f"HTTP {response.status_code}: {response.text[:200]}", response.status_code)

        try:
            payload = response.json()
        except ValueError:
            return self._failure("Response was not valid JSON", response.status_code)

        if not isinstance(payload, dict):
            return self._failure("Response was not a JSON object", response.status_code)

        if payload.get("error"):
            return self._failure(str(payload["error"]), response.status_code)

        try:
            metrics = self.normalize(payload)
        except (TypeError, ValueError, AttributeError) as e:
            return self._failure(f"Could not normalize payload: {str(e)}", response.status_code)

        log.info(f"Fetched {self.platform.value} data for client {client_id} in {time.time() - started:.2f}s")
        return metrics

    def _failure(self, message: str, status_code: Optional[int] = None) -> FetchError:
        log.error(f"{self.platform.value} fetch failed: {message}")
        return FetchError(platform=self.platform.value, message=message, status_code=status_code)

    @staticmethod
    def _pick(payload: Dict[str, Any], containers: Iterable[str], *keys: str) -> float:
        """
        First numeric value found for any of ``keys``, looking inside the
        named sub-objects first and then at the top level
        """
        scopes = [payload.get(c) for c in containers] + [payload]
        for scope in scopes:
            if not isinstance(scope, dict):
                continue
            for key in keys:
                if scope.get(key) is not None:
                    return to_number(scope[key])
        return 0.0
