from pydantic import BaseModel, Field
from typing import Literal, Optional


class ClientCredentialsRequest(BaseModel):
    grant_type: Literal["client_credentials"]
    client_id: str = Field(min_length=1)
    client_secret: str = Field(min_length=1)
    scope: Optional[str] = None


class PasswordGrantRequest(BaseModel):
    grant_type: Literal["password"]
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    scope: str


class UserTokenResponse(TokenResponse):
    role: str
    companyCode: Optional[str] = None
