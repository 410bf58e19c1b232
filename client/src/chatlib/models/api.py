from pydantic import BaseModel
from typing import Any, Mapping, Optional, Union


class Credentials(BaseModel):
    """Request body for POST /auth/signup and POST /auth/login."""
    email: str
    password: str
    fullName: Optional[str] = None


class ProfileUpdate(BaseModel):
    """Request body for PUT /auth/update-profile. Only set fields are sent."""
    fullName: Optional[str] = None
    profilePic: Optional[str] = None


class ErrorPayload(BaseModel):
    """JSON body of a rejected request; the server may or may not include `message`."""
    message: Optional[str] = None


Payload = Union[BaseModel, Mapping[str, Any]]


def to_json_payload(data: Optional[Payload]) -> Optional[dict[str, Any]]:
    if data is None:
        return None
    if isinstance(data, BaseModel):
        return data.model_dump(exclude_none=True, by_alias=True)
    return dict(data)
