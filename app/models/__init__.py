from app.models.user import User
from app.models.profile import Profile
from app.models.user_role import UserRole
from app.models.notification import Notification
from app.models.processed_webhook_event import ProcessedWebhookEvent

__all__ = [
    "User",
    "Profile",
    "UserRole",
    "Notification",
    "ProcessedWebhookEvent",
]
