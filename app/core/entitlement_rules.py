from datetime import timedelta
from typing import FrozenSet

# Trial: 30 days, only for accounts created in the last 5 minutes, once per account ever
TRIAL_LENGTH = timedelta(days=30)
TRIAL_SIGNUP_WINDOW = timedelta(minutes=5)

# Trial refusal reasons (returned verbatim to the client, which branches on them)
REASON_ALREADY_SUBSCRIBED = "already subscribed"
REASON_TRIAL_ACTIVE = "trial already active"
REASON_TRIAL_USED = "trial already used"
REASON_ACCOUNT_TOO_OLD = "account too old"

# Gateway events that promote an account to paid; everything else is acknowledged and ignored
ACTIONABLE_PAYMENT_EVENTS: FrozenSet[str] = frozenset({"PAYMENT_CONFIRMED", "PAYMENT_RECEIVED"})

# Self-service deletion: exact, case- and whitespace-sensitive
DELETION_CONFIRMATION_PHRASE = "EXCLUIR MINHA CONTA"

PRIVILEGED_ROLE = "admin"
STANDARD_ROLE = "user"

# Operator notification types
NOTIFY_NEW_ACCOUNT = "new_account"
NOTIFY_NEW_SUBSCRIPTION = "new_subscription"
