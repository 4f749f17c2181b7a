"""
Shared pieces of the route layer: camelCase models, the response
envelope and the mapping of service results to HTTP errors.
"""
from typing import Any

from fastapi import HTTPException, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.services.result import ErrorKind, ServiceResult


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys; built from ORM rows."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


ERROR_STATUS = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def envelope(data: Any = None, message: str | None = None) -> dict:
    """Successful response body: {"success": true, "data"?, "message"?}."""
    body: dict = {"success": True}
    if data is not None:
        if isinstance(data, BaseModel):
            data = data.model_dump(by_alias=True, mode="json")
        elif isinstance(data, list):
            data = [
                item.model_dump(by_alias=True, mode="json") if isinstance(item, BaseModel) else item
                for item in data
            ]
        body["data"] = data
    if message is not None:
        body["message"] = message
    return body


def unwrap(result: ServiceResult):
    """Return the value of a successful result or raise the matching HTTPException."""
    if result.ok:
        return result.value
    raise HTTPException(status_code=ERROR_STATUS[result.error], detail=result.message)
