from typing import Any, Optional

from pydantic import BaseModel


class ValidateCodeRequest(BaseModel):
    # shape is checked by the store so non-strings map to "Invalid code format"
    code: Any = None


class GenerateCodeRequest(BaseModel):
    maxUses: int = 1
    expiresInHours: Optional[float] = None
    length: int = 8
    password: Optional[str] = None


class AddCodeRequest(BaseModel):
    code: Any = None
    expiresInHours: Optional[float] = None
    maxUses: int = 1
    password: Optional[str] = None


class GenerateCodeResponse(BaseModel):
    success: bool = True
    code: str
    maxUses: int
    expiresAt: Optional[str]
    url: Optional[str] = None


class AccessCodeSummary(BaseModel):
    code: str
    created: str
    usedCount: int
    maxUses: int
    expiresAt: Optional[str]
    active: bool


class AccessCodeListResponse(BaseModel):
    codes: list[AccessCodeSummary]


class HealthResponse(BaseModel):
    status: str
    sessions: int
    activeCodes: int
    storage: str
