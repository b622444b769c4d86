from app.tasks.trial_expiry import (
    expire_lapsed_trials,
    expire_lapsed_trials_task,
)

__all__ = [
    'expire_lapsed_trials',
    'expire_lapsed_trials_task',
]
