from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.dependencies.auth import verify_supabase_token
from app.schemas.auth import UserSyncRequest, UserSyncResponse
from app.services.account_provisioning import find_user_by_supabase_id, sync_account
from app.services.supabase_admin import get_identity_created_at
from app.utils.timestamps import to_utc_iso

router = APIRouter()


@router.post("/sync-user", response_model=UserSyncResponse)
async def sync_user(
    user_data: UserSyncRequest,
    db: Session = Depends(get_db),
    payload: dict = Depends(verify_supabase_token),
):
    """
    Sync a freshly signed-up Supabase user into our database.
    Creates the account and its empty entitlement record; idempotent.
    The account's age is taken from Supabase, not from when this sync ran.
    """
    token_user_id = payload.get("sub")
    token_email = (payload.get("email") or "").lower()

    # The token must belong to the user being synced
    if token_user_id != user_data.id or token_email != user_data.email.lower():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token user does not match sync request"
        )

    created_at = None
    if find_user_by_supabase_id(db, user_data.id) is None:
        created_at = await get_identity_created_at(user_data.id)

    user, created = sync_account(db, user_data.id, user_data.email, user_data.full_name, created_at)
    return {
        "id": user.id,
        "email": user.email,
        "created": created,
        "created_at": to_utc_iso(user.created_at),
    }
