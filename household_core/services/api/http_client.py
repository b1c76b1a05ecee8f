"""
HTTP implementation of the household API (httpx).

Every request carries the bearer token from the auth collaborator when one
is available. Transport failures become NetworkError; error statuses become
the matching ApiError subclass with the backend's own message.

Requests here are NOT retried. Only identity sync retries, and it does so
around this client (see household_core.sync.identity).
"""

from typing import Any, Awaitable, Callable, Optional

import httpx

from household_core.config import get_settings
from household_core.models.account import AvailableAccounts
from household_core.models.household import Household, HouseholdMember, UserProfile
from household_core.models.transaction import Transaction
from household_core.services.api.interface import (
    ApiError,
    BadRequestError,
    HouseholdApiInterface,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
)
from household_core.services.api.normalize import (
    extract_error_code,
    extract_error_message,
    normalize_households,
    normalize_member,
    normalize_members,
    unwrap,
)


TokenProvider = Callable[[], Awaitable[Optional[str]]]

_STATUS_ERRORS: dict[int, type[ApiError]] = {
    400: BadRequestError,
    403: PermissionDeniedError,
    404: NotFoundError,
    409: BadRequestError,
    422: BadRequestError,
}


class HttpHouseholdApi(HouseholdApiInterface):
    """
    REST client for the household finance backend.

    Usage:
        api = HttpHouseholdApi(token_provider=auth.get_id_token)
        households = await api.list_households()
        await api.aclose()
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token_provider: Optional[TokenProvider] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings().api
        self._token_provider = token_provider
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.base_url,
            timeout=timeout_seconds or settings.timeout_seconds,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpHouseholdApi":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Any:
        headers = {}
        if self._token_provider is not None:
            token = await self._token_provider()
            if token:
                headers["Authorization"] = f"Bearer {token}"

        if params:
            params = {k: _param(v) for k, v in params.items() if v is not None}

        try:
            response = await self._client.request(
                method, path, params=params, json=json, headers=headers
            )
        except httpx.TimeoutException as e:
            raise NetworkError(
                "Network error: Request timeout - server took too long to respond"
            ) from e
        except httpx.ConnectError as e:
            raise NetworkError("Network error: Unable to connect to server") from e
        except httpx.TransportError as e:
            raise NetworkError() from e

        if response.status_code == 204 or not response.content:
            if response.is_success:
                return None
            raise _error_for(response.status_code, None)

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.is_success:
            raise _error_for(response.status_code, body)

        return unwrap(body)

    # =========================================================================
    # HOUSEHOLDS
    # =========================================================================

    async def list_households(self) -> list[Household]:
        return normalize_households(await self._request("GET", "/households"))

    async def get_household(self, household_id: str) -> Household:
        data = await self._request("GET", f"/households/{household_id}")
        households = normalize_households([data])
        if not households:
            raise NotFoundError(f"Household {household_id} not found", status=404)
        return households[0]

    async def delete_household(self, household_id: str) -> None:
        await self._request("DELETE", f"/households/{household_id}")

    async def leave_household(self, household_id: str) -> None:
        await self._request("POST", f"/households/{household_id}/leave")

    # =========================================================================
    # MEMBERS
    # =========================================================================

    async def list_members(self, household_id: str) -> list[HouseholdMember]:
        data = await self._request("GET", f"/households/{household_id}/members")
        return normalize_members(data)

    async def update_personal_account_access(
        self,
        household_id: str,
        allow: bool,
    ) -> HouseholdMember:
        data = await self._request(
            "PATCH",
            f"/households/{household_id}/members/me/personal-account-access",
            json={"allowPersonalAccountAccess": allow},
        )
        return self._member_or_error(data)

    async def update_shared_account_ids(
        self,
        household_id: str,
        account_ids: list[str],
    ) -> HouseholdMember:
        data = await self._request(
            "PATCH",
            f"/households/{household_id}/members/me/shared-account-ids",
            json={"sharedAccountIds": list(dict.fromkeys(account_ids))},
        )
        return self._member_or_error(data)

    @staticmethod
    def _member_or_error(data: Any) -> HouseholdMember:
        member = normalize_member(data)
        if member is None:
            raise ApiError("Malformed member in server response")
        return member

    # =========================================================================
    # ACCOUNTS, COLLECTIONS, TRANSACTIONS
    # =========================================================================

    async def list_available_accounts(
        self,
        household_id: str,
        include_inactive: bool = False,
    ) -> AvailableAccounts:
        data = await self._request(
            "GET",
            "/accounts/available",
            params={"householdId": household_id, "includeInactive": include_inactive},
        )
        if isinstance(data, list):
            data = {"accounts": data}
        return AvailableAccounts.model_validate(data or {})

    async def list_collection(self, resource: str, household_id: str) -> list[dict[str, Any]]:
        data = await self._request(
            "GET", f"/{resource}", params={"householdId": household_id}
        )
        if isinstance(data, dict):
            # paginated shape: {items|data: [...], total}
            data = data.get("items", data.get("data", []))
        return [item for item in (data or []) if isinstance(item, dict)]

    async def create_transaction(self, transaction: Transaction) -> dict[str, Any]:
        data = await self._request("POST", "/transactions", json=transaction.to_payload())
        return data or {}

    async def update_transaction(
        self,
        transaction_id: str,
        transaction: Transaction,
    ) -> dict[str, Any]:
        data = await self._request(
            "PATCH", f"/transactions/{transaction_id}", json=transaction.to_payload()
        )
        return data or {}

    # =========================================================================
    # IDENTITY
    # =========================================================================

    async def sync_identity(self, uid: str, email: Optional[str]) -> UserProfile:
        data = await self._request("POST", "/auth/sync", json={"uid": uid, "email": email})
        if isinstance(data, dict) and isinstance(data.get("user"), dict):
            data = data["user"]
        return UserProfile.model_validate(data)


def _param(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def _error_for(status: int, body: Any) -> ApiError:
    message = extract_error_message(body) or f"HTTP {status}"
    error_class = _STATUS_ERRORS.get(status, ApiError)
    return error_class(message, status=status, code=extract_error_code(body))
