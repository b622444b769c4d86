"""
Self-service account deletion.

Admins are excluded outright so the last administrator cannot remove
themselves by accident; they must ask another admin. Everyone else must
type the confirmation phrase exactly.
"""
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.entitlement_rules import DELETION_CONFIRMATION_PHRASE
from app.core.errors import Unauthenticated, Forbidden, ValidationFailed, UpstreamFailure
from app.models.user import User
from app.services.supabase_admin import delete_identity
from app.utils.roles import is_privileged

logger = logging.getLogger(__name__)

ADMIN_DELETION_MESSAGE = (
    "Administrators cannot delete their own account here. "
    "Please contact another administrator."
)
WRONG_PHRASE_MESSAGE = f"Incorrect confirmation phrase. Type exactly: {DELETION_CONFIRMATION_PHRASE}"
RETRY_LATER_MESSAGE = "Could not delete the account. Please try again later."


async def delete_own_account(db: Session, user: Optional[User], confirmation_phrase: Optional[str]) -> None:
    if user is None:
        raise Unauthenticated()

    if is_privileged(db, user.id):
        logger.warning("[Account deletion] Refused for admin user %s", user.id)
        raise Forbidden(ADMIN_DELETION_MESSAGE)

    if confirmation_phrase != DELETION_CONFIRMATION_PHRASE:
        raise ValidationFailed(WRONG_PHRASE_MESSAGE)

    user_id = user.id
    try:
        await delete_identity(user.supabase_id)
    except UpstreamFailure:
        raise UpstreamFailure(RETRY_LATER_MESSAGE)

    # The auth.users delete trigger removes this row too; deleting here keeps
    # the local store consistent without waiting on it
    try:
        db.delete(user)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("[Account deletion] Local cleanup failed for user %s; relying on auth trigger", user_id)

    logger.info("[Account deletion] User %s deleted", user_id)
