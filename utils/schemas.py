"""
Pydantic schemas shared by the API routes and the callback client.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ProviderType(str, Enum):
    GOOGLE = "google"


# ═══════════════════════════════════════════════════════════════════════════════
# Provider identity
# ═══════════════════════════════════════════════════════════════════════════════


class ExternalProfile(BaseModel):
    """
    Provider-verified identity.

    Only the Code Exchange Service builds these; reconciliation endpoints
    receive them sealed inside a signed ticket, never as client input.
    """

    provider_user_id: str
    email: str
    name: str = ""
    avatar_url: Optional[str] = None
    verified_email: Optional[bool] = None


# ═══════════════════════════════════════════════════════════════════════════════
# Auth provider configuration
# ═══════════════════════════════════════════════════════════════════════════════


class AuthProviderConfigView(BaseModel):
    """What readers see of a provider config. There is deliberately no secret field."""

    type: ProviderType
    enabled: bool
    client_id: str = ""
    has_client_secret: bool = False
    is_configured: bool = False
    redirect_uris: List[str] = Field(default_factory=list)
    configured_by: Optional[str] = None
    configured_at: Optional[datetime] = None


class AuthConfigUpdate(BaseModel):
    enabled: bool
    client_id: str = ""
    client_secret: str = ""  # write-only; blank keeps the stored secret
    redirect_uris: List[str] = Field(default_factory=list)


class ToggleRequest(BaseModel):
    enabled: bool


class ConfigTestDetails(BaseModel):
    enabled: bool
    has_client_id: bool
    has_client_secret: bool
    redirect_uris_count: int
    configuration_status: str  # "valid" | "incomplete"


class ConfigTestReport(BaseModel):
    success: bool
    message: str
    missing_fields: List[str] = Field(default_factory=list)
    details: Optional[ConfigTestDetails] = None


class PublicProviderConfig(BaseModel):
    enabled: bool = False
    client_id: Optional[str] = None


class ProviderAvailability(BaseModel):
    available: bool
    is_configured: bool
    is_enabled: bool
    has_client_id: bool
    has_client_secret: bool


class StatusMessage(BaseModel):
    success: bool
    message: str


# ═══════════════════════════════════════════════════════════════════════════════
# OAuth flow
# ═══════════════════════════════════════════════════════════════════════════════


class FlowPurpose(str, Enum):
    LOGIN = "login"
    CONNECT = "connect"


class AuthUrlResponse(BaseModel):
    auth_url: str


class LoginRequestStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class PopupUrlResponse(AuthUrlResponse):
    request_id: str          # poll /login-requests/{request_id} from the opener


class LoginRequestView(BaseModel):
    request_id: str
    purpose: FlowPurpose
    status: LoginRequestStatus
    error: Optional[str] = None


class ExchangeRequest(BaseModel):
    code: str = Field(..., min_length=1)
    state: str = ""
    redirect_uri: str = Field(..., min_length=1)


class ExchangeResult(BaseModel):
    success: bool = True
    profile: ExternalProfile
    ticket: str


class TicketRequest(BaseModel):
    ticket: str = Field(..., min_length=1)


class LoginResult(BaseModel):
    success: bool = True
    user_id: str
    display_name: str
    email: str
    token: str
    created: bool = False


class ConnectResult(BaseModel):
    success: bool = True
    provider: ProviderType = ProviderType.GOOGLE
    provider_user_id: str


class GoogleProfileView(BaseModel):
    name: str
    email: str
    picture: Optional[str] = None
    google_profile: ExternalProfile
