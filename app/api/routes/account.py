from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.dependencies.auth import get_current_user
from app.models.user import User
from app.schemas.entitlements import DeleteAccountRequest, DeleteAccountResponse, EntitlementsResponse
from app.services.account_deletion import delete_own_account
from app.services.account_provisioning import get_or_create_profile
from app.utils.timestamps import to_utc_iso

router = APIRouter()


@router.get("/entitlements", response_model=EntitlementsResponse)
def get_entitlements(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Current entitlement flags for the caller"""
    profile = get_or_create_profile(db, user)
    return {
        "trial_active": profile.trial_active,
        "trial_expires_at": to_utc_iso(profile.trial_expires_at),
        "subscription_active": profile.subscription_active,
        "access_authorized": profile.access_authorized,
        "contract_accepted": profile.contract_accepted,
        "pricing_accepted": profile.pricing_accepted,
        "has_access": profile.has_access(datetime.utcnow()),
        "updated_at": to_utc_iso(profile.updated_at),
    }


@router.post("/delete", response_model=DeleteAccountResponse)
async def delete_account(
    body: Optional[DeleteAccountRequest] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Irreversibly delete the caller's account. Admins always get 403;
    everyone else must send the exact confirmation phrase.
    """
    phrase = body.confirmationPhrase if body else None
    await delete_own_account(db, user, phrase)
    return {"success": True, "message": "Account deleted successfully"}
