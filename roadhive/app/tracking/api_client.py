"""
HTTP client for the Trip/Load API.

Used by the driver's trip session and the location transport. Every
failure, whether an error response or a broken connection, surfaces as
TripApiError so callers handle one exception type.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from roadhive.app.core.config import settings
from roadhive.app.models.load_enums import LoadStatus
from roadhive.app.schemas.load import Coordinates, LoadResponse
from roadhive.app.schemas.otp import OtpRequestResponse, OtpVerifyResponse
from roadhive.app.schemas.trip_execution import LocationRecordResponse

logger = logging.getLogger("roadhive.tracking.api")

TRANSPORT_ERROR = "ERR_TRANSPORT"
RESPONSE_ERROR = "ERR_BAD_RESPONSE"


class TripApiError(Exception):
    """A Trip/Load API call that did not succeed."""

    def __init__(self, status_code: Optional[int], error_code: str, message: str, details: Dict[str, Any] = None):
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(f"[{status_code}] {error_code}: {message}")


class TripApiClient:
    """
    Bearer-authenticated client for the ``/v1`` routes.

    Pass ``client`` to reuse an existing ``httpx.AsyncClient`` (its base URL
    must point at the API root); otherwise one is created from ``base_url``.
    """

    def __init__(
        self,
        token: str,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            timeout=timeout,
        )
        self._headers = {"Authorization": f"Bearer {token}"}

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        try:
            response = await self._client.request(method, path, json=json, headers=self._headers)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise TripApiError(None, TRANSPORT_ERROR, str(exc) or exc.__class__.__name__) from exc

        if response.is_error:
            raise self._error_from(response)

        try:
            return response.json()
        except ValueError as exc:
            raise TripApiError(response.status_code, RESPONSE_ERROR, "Response is not JSON") from exc

    @staticmethod
    def _error_from(response: httpx.Response) -> TripApiError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        return TripApiError(
            response.status_code,
            body.get("error_code", "ERR_UNKNOWN"),
            body.get("message") or response.reason_phrase,
            body.get("details"),
        )

    @staticmethod
    def _parse(model, payload):
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise TripApiError(None, RESPONSE_ERROR, f"Unexpected {model.__name__} payload") from exc

    # Loads

    async def create_load(self, data: Dict[str, Any]) -> LoadResponse:
        return self._parse(LoadResponse, await self._request("POST", "/loads", json=data))

    async def list_loads(self) -> List[LoadResponse]:
        """Loads visible to the token's role and tenant."""
        payload = await self._request("GET", "/loads")
        return [self._parse(LoadResponse, item) for item in payload]

    async def get_load(self, load_id: str) -> LoadResponse:
        return self._parse(LoadResponse, await self._request("GET", f"/loads/{load_id}"))

    async def place_bid(self, load_id: str, amount: float, driver_id: Optional[str] = None, **extra) -> LoadResponse:
        body = {"amount": amount, "driver_id": driver_id, **extra}
        return self._parse(LoadResponse, await self._request("POST", f"/loads/{load_id}/bids", json=body))

    # Trip execution

    async def update_status(self, load_id: str, status: LoadStatus) -> LoadResponse:
        payload = await self._request("PATCH", f"/loads/{load_id}/status", json={"status": LoadStatus(status).value})
        return self._parse(LoadResponse, payload)

    async def update_location(self, load_id: str, coordinates: Coordinates) -> LocationRecordResponse:
        payload = await self._request(
            "POST",
            f"/loads/{load_id}/location",
            json=coordinates.model_dump(mode="json", exclude_none=True),
        )
        return self._parse(LocationRecordResponse, payload)

    async def get_location_history(self, load_id: str) -> List[Coordinates]:
        payload = await self._request("GET", f"/loads/{load_id}/history")
        return [self._parse(Coordinates, item) for item in payload]

    # Delivery verification

    async def request_otp(self, load_id: str) -> OtpRequestResponse:
        return self._parse(OtpRequestResponse, await self._request("POST", f"/loads/{load_id}/otp/request"))

    async def resend_otp(self, load_id: str) -> OtpRequestResponse:
        return self._parse(OtpRequestResponse, await self._request("POST", f"/loads/{load_id}/otp/resend"))

    async def verify_otp(self, load_id: str, code: str) -> OtpVerifyResponse:
        payload = await self._request("POST", f"/loads/{load_id}/otp/verify", json={"otp": code})
        return self._parse(OtpVerifyResponse, payload)

    # Payments

    async def pay_advance(self, load_id: str) -> LoadResponse:
        payload = await self._request("POST", f"/loads/{load_id}/pay-advance")
        return self._parse(LoadResponse, payload["load"])

    async def pay_balance(self, load_id: str) -> LoadResponse:
        payload = await self._request("POST", f"/loads/{load_id}/pay-balance")
        return self._parse(LoadResponse, payload["load"])
