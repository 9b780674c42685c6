from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class UserProfileSave(BaseModel):
    """Profile fields reported by the identity provider on login."""
    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = None
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    image_url: Optional[str] = Field(None, alias="imageUrl")


class UserProfileOut(BaseModel):
    user_id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    image_url: Optional[str] = None
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserProfileSyncResponse(BaseModel):
    success: bool = True
    profile: UserProfileOut


class UserProfileResponse(BaseModel):
    profile: Optional[UserProfileOut] = None
