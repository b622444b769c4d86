"""
Webhook from the payment gateway.
Authenticated by a shared secret in X-Webhook-Token; safe to redeliver any number of times.
"""
from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.services.notifications import notify_admins_in_background
from app.services.payment_confirmation import handle_payment_event, subscription_notification

router = APIRouter()


@router.post("/payment")
async def payment_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """
    200 for processed, duplicate or ignored events; 400/401/404/500 otherwise
    (rendered by the EntitlementError handler in app.main).
    """
    payload = await request.body()
    token = request.headers.get("X-Webhook-Token")

    outcome = await handle_payment_event(db, token, payload)
    if outcome.promoted:
        background_tasks.add_task(notify_admins_in_background, **subscription_notification(outcome.user))
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)
