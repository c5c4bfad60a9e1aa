"""
Async client for the vendor open API.

Signs and issues every vendor call the bridge needs: serial bind/unbind,
control-group membership, system list, last running data, last
high-frequency power data, and remote dispatch. All endpoints are
``POST`` with a JSON body; every body carries the signature triple
``api_key``, ``timestamp`` (unix seconds) and
``sign = sha512(api_secret + timestamp)``.

The vendor answers ``{"code": int, "info": str, "data": ...}``. Each call
returns a :class:`~bridge.src.models.VendorResult` carrying that code and
message; nothing is remembered between calls. Network errors, timeouts,
non-2xx HTTP statuses and undecodable bodies become a result with code
:data:`~bridge.src.models.TRANSPORT_ERROR` instead of an exception, so
callers handle them on the same path as a vendor rejection.

Operations:
- bind_sn(serial, check_code)
- unbind_sn(serial)
- add_to_group(serial) / remove_from_group(serial)
- list_systems(): all pages of the system list
- get_running_data() / get_fast_data(): group-wide snapshots
- send_dispatch(request)

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar

import httpx
from pydantic import ValidationError

from bridge.src.models import (
    SUCCESS_CODE,
    TRANSPORT_ERROR,
    DispatchRequest,
    FastSnapshot,
    RunningSnapshot,
    SystemInfo,
    SystemListPage,
    VendorResult,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

BIND_SN_PATH = "/Open/ESS/BindSn"
UNBIND_SN_PATH = "/Open/ESS/UnBindSn"
ADD_TO_GROUP_PATH = "/Open/Group/AddSnByGroup"
REMOVE_FROM_GROUP_PATH = "/Open/Group/RemoveSnByGroup"
SYSTEM_LIST_PATH = "/Open/ESS/GetSystemList"
RUNNING_DATA_PATH = "/Open/Group/GetLastRunningDataByGroup"
FAST_DATA_PATH = "/Open/Group/GetLastPowerDataByGroup"
DISPATCH_PATH = "/Open/Dispatch/RemoteDispatchBySN"

_DEFAULT_TIMEOUT_S = 15.0
_MAX_SYSTEM_PAGES = 100


def sign_request(api_secret: str, timestamp: int) -> str:
    """Return the hex SHA-512 signature of ``api_secret + timestamp``."""
    return hashlib.sha512(f"{api_secret}{timestamp}".encode()).hexdigest()


class VendorClient:
    """Signed HTTPS client for the vendor open API.

    Args:
        base_url: Vendor API base URL. Must start with ``https://``.
        api_key: Vendor API key.
        api_secret: Vendor API secret used for signing (never sent).
        group_key: Control group the bridge manages.
        timeout_s: Per-request timeout in seconds.
        page_size: Page size used when listing systems.
        clock: Returns the current unix time; injectable for tests.

    Raises:
        ValueError: If *base_url* does not start with ``https://``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        api_secret: str,
        group_key: str,
        timeout_s: float = _DEFAULT_TIMEOUT_S,
        page_size: int = 100,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not base_url.lower().startswith("https://"):
            raise ValueError(f"Vendor base URL must use HTTPS (got: '{base_url}').")
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._api_secret = api_secret
        self._group_key = group_key
        self._timeout_s = timeout_s
        self._page_size = page_size
        self._clock = clock

    # ------------------------------------------------------------------
    # Enrolment
    # ------------------------------------------------------------------

    async def bind_sn(self, serial: str, check_code: str) -> VendorResult[None]:
        """Bind a system serial to this API account."""
        return await self._call(BIND_SN_PATH, {"sys_sn": serial, "check_code": check_code})

    async def unbind_sn(self, serial: str) -> VendorResult[None]:
        """Release a system serial from this API account."""
        return await self._call(UNBIND_SN_PATH, {"sys_sn": serial})

    async def add_to_group(self, serial: str) -> VendorResult[None]:
        """Add a bound serial to the managed control group."""
        return await self._call(
            ADD_TO_GROUP_PATH, {"group_key": self._group_key, "sys_sn": serial}
        )

    async def remove_from_group(self, serial: str) -> VendorResult[None]:
        """Remove a serial from the managed control group."""
        return await self._call(
            REMOVE_FROM_GROUP_PATH, {"group_key": self._group_key, "sys_sn": serial}
        )

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    async def list_systems(self) -> VendorResult[list[SystemInfo]]:
        """Fetch every page of the system list.

        Stops at the first failed page and returns that failure; partial
        pages are not returned.
        """
        systems: list[SystemInfo] = []
        page_index = 1
        while page_index <= _MAX_SYSTEM_PAGES:
            result = await self._call(
                SYSTEM_LIST_PATH,
                {"page_index": page_index, "page_size": self._page_size},
                parse=SystemListPage.model_validate,
            )
            if not result.ok:
                return VendorResult(code=result.code, message=result.message)

            page = result.payload or SystemListPage()
            systems.extend(page.systems)
            if page_index >= page.total_page_count or not page.systems:
                break
            page_index += 1

        return VendorResult(code=SUCCESS_CODE, payload=systems)

    async def get_running_data(self) -> VendorResult[list[RunningSnapshot]]:
        """Fetch the last running data of every system in the group."""
        return await self._call(
            RUNNING_DATA_PATH,
            {"group_key": self._group_key},
            parse=lambda data: [RunningSnapshot.model_validate(d) for d in data or []],
        )

    async def get_fast_data(self) -> VendorResult[list[FastSnapshot]]:
        """Fetch the last high-frequency power data of every system in the group."""
        return await self._call(
            FAST_DATA_PATH,
            {"group_key": self._group_key},
            parse=lambda data: [FastSnapshot.model_validate(d) for d in data or []],
        )

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    async def send_dispatch(self, request: DispatchRequest) -> VendorResult[None]:
        """Issue a remote dispatch command to one system."""
        return await self._call(DISPATCH_PATH, request.model_dump())

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _auth_params(self) -> dict[str, Any]:
        """Build the signature triple for one request."""
        timestamp = int(self._clock())
        return {
            "api_key": self._api_key,
            "timestamp": timestamp,
            "sign": sign_request(self._api_secret, timestamp),
        }

    async def _call(
        self,
        path: str,
        params: dict[str, Any],
        parse: Callable[[Any], T] | None = None,
    ) -> VendorResult[T]:
        """POST a signed request and wrap the vendor response.

        Args:
            path: Endpoint path below the base URL.
            params: Endpoint-specific body members.
            parse: Optional converter for the ``data`` member of a
                successful response.

        Returns:
            The vendor result; never raises for transport or decode errors.
        """
        body = {**self._auth_params(), **params}
        url = f"{self._base_url}{path}"

        try:
            async with httpx.AsyncClient(verify=True, timeout=self._timeout_s) as client:
                response = await client.post(url, json=body)
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            logger.warning("Vendor call %s failed (network error): %s", path, exc)
            return VendorResult(code=TRANSPORT_ERROR, message=str(exc))
        except httpx.HTTPError as exc:
            logger.warning("Vendor call %s failed (HTTP error): %s", path, exc)
            return VendorResult(code=TRANSPORT_ERROR, message=str(exc))

        if response.status_code != 200:
            logger.warning("Vendor call %s failed (HTTP %d)", path, response.status_code)
            return VendorResult(code=TRANSPORT_ERROR, message=f"HTTP {response.status_code}")

        try:
            envelope = response.json()
            code = int(envelope.get("code", TRANSPORT_ERROR))
            message = str(envelope.get("info") or "")
            data = envelope.get("data")
        except (ValueError, AttributeError, TypeError) as exc:
            logger.warning("Vendor call %s returned an undecodable body: %s", path, exc)
            return VendorResult(code=TRANSPORT_ERROR, message="undecodable response body")

        if code != SUCCESS_CODE:
            logger.info("Vendor call %s rejected: code=%d info=%s", path, code, message)
            return VendorResult(code=code, message=message)

        if parse is None:
            return VendorResult(code=code, message=message)

        try:
            payload = parse(data)
        except (ValidationError, TypeError) as exc:
            logger.warning("Vendor call %s returned unexpected data: %s", path, exc)
            return VendorResult(code=TRANSPORT_ERROR, message="unexpected response data")

        return VendorResult(code=code, message=message, payload=payload)
