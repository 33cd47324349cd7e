"""Tuu (Haulmer) payment-integration API client.

Two JSON POST endpoints are consumed:
- /BranchReport/branch-report : sales grouped by merchant location
- /Report/get-report          : flat transaction report (alternate shape)

Both authenticate with the API key sent as ``X-API-Key`` and as a Bearer
token, since upstream deployments differ in which one they read.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from possync.core.config import settings
from possync.services.pos.errors import (
    PosAuthenticationError,
    PosUpstreamRequestError,
    PosUpstreamUnavailableError,
)

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 20
ERROR_BODY_LIMIT = 800


@dataclass
class BranchReportRequest:
    """Parameters of one branch-report page."""

    date_from: str  # YYYY-MM-DD
    date_to: str  # YYYY-MM-DD
    page: int = 1
    page_size: int = MAX_PAGE_SIZE
    location_id: Optional[str] = None
    serial_number: Optional[str] = None
    transaction_type: Optional[str] = None
    card_brand: Optional[str] = None  # only honored upstream after 2025-05-01

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "page": max(self.page, 1),
            "pageSize": min(max(self.page_size, 1), MAX_PAGE_SIZE),
            # Some deployments read from/to, others startDate/endDate
            "from": self.date_from,
            "to": self.date_to,
            "startDate": self.date_from,
            "endDate": self.date_to,
        }
        filters = {
            "locationId": self.location_id,
            "serialNumber": self.serial_number,
            "typeTransaction": self.transaction_type,
            "cardBrand": self.card_brand,
        }
        payload.update({k: v for k, v in filters.items() if v})
        return payload


class TuuClient:
    """Async client for the Tuu branch-report and report APIs."""

    BRANCH_REPORT_PATH = "/BranchReport/branch-report"
    REPORT_PATH = "/Report/get-report"

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self._base_url = (base_url or settings.pos_base_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.pos_request_timeout
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def api_key(self) -> str:
        return self._api_key

    def _headers(self) -> Dict[str, str]:
        return {
            "X-API-Key": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def fetch_branch_report(self, request: BranchReportRequest) -> Dict[str, Any]:
        """Fetch one page of the branch report."""
        payload = request.to_payload()
        logger.debug(f"Calling branch report with payload: {json.dumps(payload)}")
        return await self._post(self.BRANCH_REPORT_PATH, payload)

    async def fetch_report(
        self,
        start_date: str,
        end_date: str,
        serial_number: Optional[str] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> Dict[str, Any]:
        """Fetch one page of the alternate transaction report."""
        filters: Dict[str, Any] = {"StartDate": start_date, "EndDate": end_date}
        if serial_number:
            filters["SerialNumber"] = serial_number
        payload = {
            "Filters": filters,
            "page": max(page, 1),
            "pageSize": min(max(page_size, 1), MAX_PAGE_SIZE),
        }
        return await self._post(self.REPORT_PATH, payload)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        logger.info(f"POS API Request: POST {path}")
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                resp = await client.post(path, json=payload, headers=self._headers())
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise self._classify(path, e.response) from e
        except httpx.TimeoutException as e:
            logger.error(f"POS API timeout after {self._timeout}s: POST {path}")
            raise PosUpstreamRequestError(
                f"POS API error (unknown): request timed out after {self._timeout}s",
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"POS API transport error: POST {path}: {e}")
            raise PosUpstreamRequestError(f"POS API error (unknown): {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            body = resp.text[:ERROR_BODY_LIMIT]
            raise PosUpstreamRequestError(
                f"POS API error ({resp.status_code}): response is not JSON",
                status_code=resp.status_code,
                body=body,
            ) from e

        message = data.get("message") if isinstance(data, dict) else None
        logger.info(f"POS API Response: {resp.status_code} - {message or 'Success'}")
        return data

    @staticmethod
    def _classify(path: str, response: httpx.Response) -> Exception:
        """Map a non-2xx response to a typed error."""
        status_code = response.status_code
        body = response.text[:ERROR_BODY_LIMIT]
        logger.error(f"POS API Response Error: POST {path} -> {status_code}: {body}")

        if status_code == 401:
            return PosAuthenticationError()
        if status_code >= 500:
            return PosUpstreamUnavailableError()

        inferred = ""
        try:
            data = response.json()
            if isinstance(data, dict):
                inferred = data.get("message") or data.get("error") or ""
            elif isinstance(data, str):
                inferred = data
        except ValueError:
            inferred = response.text[:200]
        details = f" | details={body}" if body else ""
        return PosUpstreamRequestError(
            f"POS API error ({status_code}): {inferred or response.reason_phrase}{details}",
            status_code=status_code,
            body=body,
        )


class PosClientRegistry:
    """Process-wide holder of the current TuuClient.

    The client is rebuilt whenever the configured API key or base URL
    changes; ``reset()`` forces the next ``get()`` to rebuild.
    """

    def __init__(self):
        self._client: Optional[TuuClient] = None
        self.transport: Optional[httpx.AsyncBaseTransport] = None

    def get(self, api_key: str, base_url: Optional[str] = None) -> TuuClient:
        base_url = (base_url or settings.pos_base_url).rstrip("/")
        client = self._client
        if client is None or client.api_key != api_key or client.base_url != base_url:
            client = TuuClient(api_key, base_url, transport=self.transport)
            self._client = client
            logger.info(f"POS API client initialized for {base_url}")
        return client

    def reset(self) -> None:
        self._client = None

    @property
    def current(self) -> Optional[TuuClient]:
        return self._client


client_registry = PosClientRegistry()
