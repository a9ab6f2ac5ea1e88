"""Token registry request and response schemas.

Request fields use the camelCase names deployed clients already send. Format
checks (email shape, token length) happen in the registry so every entry
point rejects the same inputs with the same error.
"""

from pydantic import BaseModel, ConfigDict, Field


class TokenRegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str | None = None
    fcm_token: str | None = Field(None, alias="fcmToken")
    device_id: str | int | None = Field(None, alias="deviceId")


class TokenUnregisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str | None = None
    token: str | None = None
    fcm_token: str | None = Field(None, alias="fcmToken")
    device_id: str | int | None = Field(None, alias="deviceId")

    @property
    def selected_token(self) -> str | None:
        return self.token or self.fcm_token


class TokenRegisterResponse(BaseModel):
    success: bool
    result: str


class TokenUnregisterResponse(BaseModel):
    success: bool
    removed: bool


class TokenLookupResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    has_valid_token: bool = Field(..., alias="hasValidToken")
    token: str | None = None


class TokenListResponse(BaseModel):
    tokens: list[str]
