"""
Request models for the HTTP API.

Clients send camelCase keys (gymId, qrCode, eventId); the models accept
either that or the snake_case field name.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from gymflow.models.domain import Credential
from gymflow.utils import is_valid_rut_format, normalize_rut


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class CredentialFields(ApiModel):
    """Identity fields; the most specific one wins (userId, then rut, then qrCode)."""
    user_id: Optional[str] = Field(default=None, alias="userId")
    rut: Optional[str] = None
    qr_code: Optional[str] = Field(default=None, alias="qrCode")

    def credential(self) -> Credential:
        return Credential.of(user_id=self.user_id, rut=self.rut, qr_code=self.qr_code)


class CheckinCreate(CredentialFields):
    gym_id: str = Field(alias="gymId", min_length=1)
    event_id: Optional[str] = Field(default=None, alias="eventId", max_length=128)


class CheckoutByIdentity(CredentialFields):
    gym_id: str = Field(alias="gymId", min_length=1)
    event_id: Optional[str] = Field(default=None, alias="eventId", max_length=128)


class AccessRequest(CredentialFields):
    """Kiosk scan. gymId is optional: the operator session fixes the gym."""
    gym_id: Optional[str] = Field(default=None, alias="gymId")
    event_id: Optional[str] = Field(default=None, alias="eventId", max_length=128)


class SimulateRequest(CredentialFields):
    gym_id: str = Field(alias="gymId", min_length=1)
    event: Optional[Literal["entry", "exit"]] = None
    event_id: Optional[str] = Field(default=None, alias="eventId", max_length=128)


class RegisterRequest(ApiModel):
    email: EmailStr
    name: str = Field(min_length=3, max_length=120)
    password: str = Field(min_length=6, max_length=128)
    rut: Optional[str] = None
    gym_id: Optional[str] = Field(default=None, alias="gymId")

    @field_validator("rut")
    @classmethod
    def _rut_format(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        if not is_valid_rut_format(v):
            raise ValueError("RUT debe tener formato válido (ej: 12345678-9)")
        return normalize_rut(v)


class LoginRequest(ApiModel):
    email: EmailStr
    password: str = Field(min_length=1)


class OperatorSessionRequest(ApiModel):
    email: EmailStr
    password: str = Field(min_length=1)
    gym_id: str = Field(alias="gymId", min_length=1)


class ValidateRutRequest(ApiModel):
    rut: str = Field(min_length=2)
    gym_id: str = Field(alias="gymId", min_length=1)
