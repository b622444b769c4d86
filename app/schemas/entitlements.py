from pydantic import BaseModel
from typing import Optional


class TrialActivationResponse(BaseModel):
    granted: bool
    reason: Optional[str] = None
    expiresAt: Optional[str] = None  # ISO 8601, only when granted


class DeleteAccountRequest(BaseModel):
    confirmationPhrase: Optional[str] = None


class DeleteAccountResponse(BaseModel):
    success: bool
    message: Optional[str] = None


class EntitlementsResponse(BaseModel):
    trial_active: bool
    trial_expires_at: Optional[str] = None
    subscription_active: bool
    access_authorized: bool
    contract_accepted: bool
    pricing_accepted: bool
    has_access: bool
    updated_at: Optional[str] = None

    class Config:
        from_attributes = True
