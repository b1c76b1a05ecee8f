"""
Server response normalization.

The backend is trusted for authorization but not for shape: entries that
are null, not objects, empty, or missing their id are dropped here so the
rest of the core only ever sees valid models.
"""

from typing import Any, Optional

from pydantic import ValidationError

from household_core.models.household import Household, HouseholdMember, HouseholdRole


_ROLES = {role.value for role in HouseholdRole}


def unwrap(body: Any) -> Any:
    """Return `data` from a {success, data} envelope, or the body itself."""
    if isinstance(body, dict) and "success" in body:
        return body.get("data")
    return body


def _normalize_role(value: Any) -> str:
    if isinstance(value, str) and value.upper() in _ROLES:
        return value.upper()
    return HouseholdRole.VIEWER.value


def normalize_households(raw: Any) -> list[Household]:
    """Valid households, in server order. Unknown roles become VIEWER."""
    if not isinstance(raw, list):
        return []

    households = []
    for entry in raw:
        if not isinstance(entry, dict) or not entry:
            continue
        household_id = entry.get("id")
        if not isinstance(household_id, str) or not household_id.strip():
            continue
        data = dict(entry)
        data["role"] = _normalize_role(entry.get("role"))
        if data.get("name") is None:
            data["name"] = ""
        try:
            households.append(Household.model_validate(data))
        except ValidationError:
            continue
    return households


def _dedupe(ids: Any) -> list[str]:
    if not isinstance(ids, list):
        return []
    seen: dict[str, None] = {}
    for account_id in ids:
        if isinstance(account_id, str) and account_id:
            seen.setdefault(account_id, None)
    return list(seen)


def normalize_member(entry: Any) -> Optional[HouseholdMember]:
    """A member needs its own id plus a user with an email."""
    if not isinstance(entry, dict) or not entry.get("id"):
        return None
    user = entry.get("user")
    if not isinstance(user, dict) or not user.get("email"):
        return None

    data = dict(entry)
    data["role"] = _normalize_role(entry.get("role"))
    data["userId"] = entry.get("userId") or entry.get("user_id") or user.get("id")
    data["allowPersonalAccountAccess"] = bool(entry.get("allowPersonalAccountAccess"))
    data["sharedAccountIds"] = _dedupe(entry.get("sharedAccountIds"))
    data.pop("allow_personal_account_access", None)
    data.pop("shared_account_ids", None)
    data.pop("user_id", None)
    if not user.get("id"):
        data["user"] = {**user, "id": data["userId"]}
    try:
        return HouseholdMember.model_validate(data)
    except ValidationError:
        return None


def normalize_members(raw: Any) -> list[HouseholdMember]:
    if not isinstance(raw, list):
        return []
    members = (normalize_member(entry) for entry in raw)
    return [member for member in members if member is not None]


# =============================================================================
# ERROR MESSAGES
# =============================================================================

def _format_details(details: Any) -> Optional[str]:
    if not isinstance(details, dict):
        return None
    parts = []
    for key, value in details.items():
        if isinstance(value, list):
            messages = [v for v in value if isinstance(v, str)]
            if messages:
                parts.append(f"{key}: {', '.join(messages)}")
        elif isinstance(value, str) and value:
            parts.append(f"{key}: {value}")
    return "; ".join(parts) if parts else None


def extract_error_message(body: Any) -> Optional[str]:
    """
    Best human-readable message from an error body.

    Accepts {message}, {error: "..."} and
    {success: false, error: {code, message, details}}.
    """
    if not isinstance(body, dict):
        return None

    message = body.get("message")
    if isinstance(message, str) and message:
        return message

    error = body.get("error")
    if isinstance(error, str) and error:
        return error

    if isinstance(error, dict):
        error_message = error.get("message")
        error_message = error_message if isinstance(error_message, str) and error_message else None
        details = _format_details(error.get("details"))
        if error_message and details:
            return f"{error_message}: {details}"
        return error_message or details

    return None


def extract_error_code(body: Any) -> Optional[str]:
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        code = body["error"].get("code")
        return str(code) if code is not None else None
    return None
