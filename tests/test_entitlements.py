from datetime import datetime, timedelta

from app.models.profile import Profile


def test_entitlements_reflect_profile(client, make_user, login_as):
    expires = datetime.utcnow() + timedelta(days=10)
    login_as(make_user(trial_active=True, trial_expires_at=expires, access_authorized=True))

    response = client.get("/account/entitlements")

    assert response.status_code == 200
    body = response.json()
    assert body["trial_active"] is True
    assert body["trial_expires_at"] == expires.isoformat() + "Z"
    assert body["subscription_active"] is False
    assert body["has_access"] is True


def test_lapsed_trial_has_no_access(client, make_user, login_as):
    login_as(make_user(trial_active=True, trial_expires_at=datetime.utcnow() - timedelta(hours=1)))

    assert client.get("/account/entitlements").json()["has_access"] is False


def test_has_access_prefers_subscription():
    now = datetime(2026, 1, 1)
    profile = Profile(subscription_active=True, trial_active=False)
    assert profile.has_access(now) is True
    assert Profile(subscription_active=False, trial_active=False).has_access(now) is False
    assert Profile(trial_expires_at=now).trial_was_issued is True


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_timestamps_match_trial_activation_format(client, make_user, login_as):
    login_as(make_user())

    granted = client.post("/trial/activate").json()
    body = client.get("/account/entitlements").json()

    assert body["trial_expires_at"] == granted["expiresAt"]
    assert body["updated_at"].endswith("Z")
