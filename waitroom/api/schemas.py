from pydantic import BaseModel


class TokenRequest(BaseModel):
    token: str | None = None


class StatusResponse(BaseModel):
    valid: bool
    token: str | None = None
    expired_time: int | None = None
    remaining_time: int | None = None
    error: str | None = None


class RegisterResponse(BaseModel):
    success: bool = True
    token: str
    created_time: int


class CleanupResponse(BaseModel):
    deleted: int
