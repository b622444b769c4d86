from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.dependencies.auth import get_current_user
from app.models.user import User
from app.schemas.entitlements import TrialActivationResponse
from app.services.notifications import notify_admins_in_background
from app.services.trial_activation import activate_trial, trial_notification

router = APIRouter()


@router.post("/activate", response_model=TrialActivationResponse, response_model_exclude_none=True)
def activate(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Grant the caller's one and only free trial.
    Refusals are 200 responses with granted=false and a stable reason.
    """
    result = activate_trial(db, user)
    if result.granted:
        # Operators are told after the response; a failure there never undoes the grant
        background_tasks.add_task(notify_admins_in_background, **trial_notification(user))
    return result.to_response()
