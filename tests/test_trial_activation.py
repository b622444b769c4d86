from datetime import datetime, timedelta

import pytest

from app.core.entitlement_rules import (
    NOTIFY_NEW_ACCOUNT,
    REASON_ACCOUNT_TOO_OLD,
    REASON_ALREADY_SUBSCRIBED,
    REASON_TRIAL_ACTIVE,
    REASON_TRIAL_USED,
)
from app.core.errors import Unauthenticated
from app.models.notification import Notification
from app.models.profile import Profile
from app.services.trial_activation import activate_trial
from app.tasks.trial_expiry import expire_lapsed_trials

T0 = datetime(2026, 3, 1, 12, 0, 0)


def test_grants_thirty_day_trial_to_new_account(db_session, make_user, reload_profile):
    user = make_user(created_at=T0)

    result = activate_trial(db_session, user, now=T0 + timedelta(minutes=1))

    assert result.granted is True
    assert result.expires_at == T0 + timedelta(minutes=1, days=30)
    profile = reload_profile(user)
    assert profile.trial_active is True
    assert profile.access_authorized is True
    assert profile.trial_expires_at == result.expires_at
    assert profile.subscription_active is False


def test_second_call_reports_trial_already_active(db_session, make_user, reload_profile):
    user = make_user(created_at=T0)
    first = activate_trial(db_session, user, now=T0 + timedelta(minutes=1))

    second = activate_trial(db_session, user, now=T0 + timedelta(minutes=2))

    assert second.granted is False
    assert second.reason == REASON_TRIAL_ACTIVE
    assert reload_profile(user).trial_expires_at == first.expires_at


def test_lapsed_trial_is_never_reissued(db_session, make_user, reload_profile):
    user = make_user(created_at=T0)
    granted = activate_trial(db_session, user, now=T0 + timedelta(minutes=1))

    expire_lapsed_trials(db_session, now=granted.expires_at + timedelta(hours=1))
    profile = reload_profile(user)
    assert profile.trial_active is False
    assert profile.trial_expires_at is not None

    result = activate_trial(db_session, user, now=T0 + timedelta(minutes=3))
    assert result.granted is False
    assert result.reason == REASON_TRIAL_USED


def test_old_account_is_refused_without_changes(db_session, make_user, reload_profile):
    user = make_user(created_at=T0 - timedelta(minutes=10))

    result = activate_trial(db_session, user, now=T0)

    assert result.granted is False
    assert result.reason == REASON_ACCOUNT_TOO_OLD
    profile = reload_profile(user)
    assert profile.trial_active is False
    assert profile.trial_expires_at is None
    assert profile.access_authorized is False


def test_account_exactly_at_window_edge_is_still_eligible(db_session, make_user):
    user = make_user(created_at=T0)

    result = activate_trial(db_session, user, now=T0 + timedelta(minutes=5))

    assert result.granted is True


def test_subscribed_account_is_refused_before_age_check(db_session, make_user, reload_profile):
    user = make_user(
        created_at=T0 - timedelta(days=60),
        subscription_active=True,
        access_authorized=True,
    )

    result = activate_trial(db_session, user, now=T0)

    assert result.granted is False
    assert result.reason == REASON_ALREADY_SUBSCRIBED
    assert reload_profile(user).trial_expires_at is None


def test_missing_account_is_unauthenticated(db_session):
    with pytest.raises(Unauthenticated):
        activate_trial(db_session, None)


def test_missing_profile_is_created_then_trial_granted(db_session, make_user, reload_profile):
    user = make_user(created_at=T0)
    db_session.query(Profile).filter(Profile.user_id == user.id).delete()
    db_session.commit()
    db_session.expire_all()

    result = activate_trial(db_session, user, now=T0 + timedelta(minutes=1))

    assert result.granted is True
    assert reload_profile(user).trial_active is True


def test_stale_read_cannot_issue_a_second_trial(db_session, session_factory, make_user, reload_profile):
    user = make_user()
    # Load the record into this session, then let another writer grant the trial
    cached = db_session.query(Profile).filter(Profile.user_id == user.id).one()
    assert cached.trial_expires_at is None

    other = session_factory()
    try:
        concurrent_expiry = datetime.utcnow() + timedelta(days=30)
        other.query(Profile).filter(Profile.user_id == user.id).update(
            {Profile.trial_active: True, Profile.trial_expires_at: concurrent_expiry,
             Profile.access_authorized: True},
            synchronize_session=False,
        )
        other.commit()
    finally:
        other.close()

    result = activate_trial(db_session, user)

    assert result.granted is False
    assert result.reason == REASON_TRIAL_ACTIVE
    assert reload_profile(user).trial_expires_at == concurrent_expiry


def test_to_response_shapes():
    from app.services.trial_activation import TrialResult

    assert TrialResult(granted=False, reason=REASON_TRIAL_USED).to_response() == {
        "granted": False,
        "reason": REASON_TRIAL_USED,
    }
    body = TrialResult(granted=True, expires_at=T0).to_response()
    assert body == {"granted": True, "expiresAt": "2026-03-01T12:00:00Z"}


class TestActivateRoute:
    def test_grant_returns_expiry_and_notifies_admins(self, client, db_session, make_user, login_as):
        admin = make_user(admin=True, email="ops@example.com")
        login_as(make_user(email="new@example.com"))

        response = client.post("/trial/activate")

        assert response.status_code == 200
        body = response.json()
        assert body["granted"] is True
        assert body["expiresAt"].endswith("Z")
        assert "reason" not in body

        db_session.expire_all()
        notes = db_session.query(Notification).all()
        assert [(n.user_id, n.type) for n in notes] == [(admin.id, NOTIFY_NEW_ACCOUNT)]
        assert "new@example.com" in notes[0].message

    def test_refusal_is_200_with_reason(self, client, make_user, login_as):
        login_as(make_user(created_at=datetime.utcnow() - timedelta(days=2)))

        response = client.post("/trial/activate")

        assert response.status_code == 200
        assert response.json() == {"granted": False, "reason": REASON_ACCOUNT_TOO_OLD}

    def test_refusal_does_not_notify(self, client, db_session, make_user, login_as):
        make_user(admin=True)
        login_as(make_user(subscription_active=True))

        response = client.post("/trial/activate")

        assert response.json()["reason"] == REASON_ALREADY_SUBSCRIBED
        assert db_session.query(Notification).count() == 0

    def test_unknown_identity_is_401(self, client, auth_payload):
        auth_payload.update({"sub": "nobody", "email": "nobody@example.com"})

        response = client.post("/trial/activate")

        assert response.status_code == 401
        assert response.json()["code"] == "unauthenticated"
