from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class Identity(BaseModel):
    """The authenticated user as returned by `/auth/check`, `/auth/login`, etc."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="allow",
        frozen=True,
        coerce_numbers_to_str=True,
    )

    id: str = Field(alias="_id")
    fullName: Optional[str] = None
    email: Optional[str] = None
    profilePic: Optional[str] = None
    createdAt: Optional[str] = None
