"""Shared response envelope and field types"""
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import AfterValidator
from typing_extensions import Annotated


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Store every timestamp as naive UTC"""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


UTCDatetime = Annotated[datetime, AfterValidator(to_naive_utc)]


def success_response(message: str = "", data: Any = None) -> dict:
    """Build the ``{success, message, data}`` envelope"""
    body = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    return body
