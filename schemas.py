"""
Request bodies sent by the bashhub shell client.

Field names are fixed by the client: lower camelCase, except `Username`
on user creation. Every field has a zero-value default because the client
omits fields freely.
"""

from typing import Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from config import INT32_MAX, INT32_MIN, INT64_MAX, INT64_MIN


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# integers must fit the column they are stored in
def int32(default=0, **kwargs):
    return Field(default, ge=INT32_MIN, le=INT32_MAX, **kwargs)


def int64(default=0, **kwargs):
    return Field(default, ge=INT64_MIN, le=INT64_MAX, **kwargs)


class LoginRequest(WireModel):
    username: str = Field("", validation_alias=AliasChoices("username", "Username"))
    password: str = ""
    mac: Optional[str] = None


class UserCreate(WireModel):
    username: str = Field("", validation_alias=AliasChoices("Username", "username"))
    email: str = ""
    password: str = ""
    registration_code: Optional[str] = Field(None, alias="registrationCode")


class CommandIn(WireModel):
    process_id: int = int32(alias="processId")
    process_start_time: int = int64(alias="processStartTime")
    uuid: str = ""
    command: str = ""
    created: int = int64()
    path: str = ""
    system_name: str = Field("", alias="systemName")
    exit_status: int = int32(alias="exitStatus")


class SystemIn(WireModel):
    mac: str = ""
    hostname: Optional[str] = None
    name: Optional[str] = None
    client_version: Optional[str] = Field(None, alias="clientVersion")


class ImportIn(WireModel):
    """Same shape as GET /api/v1/command/{uuid} returns."""

    command: str = ""
    path: str = ""
    created: int = int64()
    uuid: str = ""
    exit_status: int = int32(alias="exitStatus")
    system_name: str = Field("", alias="systemName")
    session_id: Optional[Union[int, str]] = Field(None, alias="sessionId")
