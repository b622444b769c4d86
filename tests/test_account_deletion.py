from unittest.mock import AsyncMock

import pytest

from app.core.entitlement_rules import DELETION_CONFIRMATION_PHRASE
from app.core.errors import Forbidden, UpstreamFailure, ValidationFailed
from app.models.profile import Profile
from app.models.user import User
from app.models.user_role import UserRole
from app.services.account_deletion import (
    ADMIN_DELETION_MESSAGE,
    RETRY_LATER_MESSAGE,
    delete_own_account,
)


@pytest.fixture
def delete_identity(monkeypatch):
    mock = AsyncMock(return_value=None)
    monkeypatch.setattr("app.services.account_deletion.delete_identity", mock)
    return mock


def delete(client, phrase=DELETION_CONFIRMATION_PHRASE):
    return client.post("/account/delete", json={"confirmationPhrase": phrase})


def test_member_with_exact_phrase_is_deleted(client, db_session, make_user, login_as, delete_identity):
    user = login_as(make_user(email="leaving@example.com"))
    user_id, supabase_id = user.id, user.supabase_id

    response = delete(client)

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Account deleted successfully"}
    delete_identity.assert_awaited_once_with(supabase_id)
    db_session.expire_all()
    assert db_session.query(User).filter(User.id == user_id).count() == 0
    assert db_session.query(Profile).filter(Profile.user_id == user_id).count() == 0
    assert db_session.query(UserRole).filter(UserRole.user_id == user_id).count() == 0


def test_admin_is_refused_even_with_exact_phrase(client, db_session, make_user, login_as, delete_identity):
    admin = login_as(make_user(admin=True))

    response = delete(client)

    assert response.status_code == 403
    assert response.json() == {"detail": ADMIN_DELETION_MESSAGE, "code": "forbidden"}
    delete_identity.assert_not_awaited()
    db_session.expire_all()
    assert db_session.query(User).filter(User.id == admin.id).count() == 1


@pytest.mark.parametrize("phrase", [
    "EXCLUIR MINHA CONTA ",
    "excluir minha conta",
    " EXCLUIR MINHA CONTA",
    "",
])
def test_phrase_must_match_exactly(client, make_user, login_as, delete_identity, phrase):
    login_as(make_user())

    response = delete(client, phrase)

    assert response.status_code == 400
    assert DELETION_CONFIRMATION_PHRASE in response.json()["detail"]
    delete_identity.assert_not_awaited()


def test_missing_phrase_is_400(client, make_user, login_as, delete_identity):
    login_as(make_user())

    assert client.post("/account/delete", json={}).status_code == 400
    assert client.post("/account/delete").status_code == 400
    delete_identity.assert_not_awaited()


def test_identity_provider_failure_keeps_account(client, db_session, make_user, login_as, delete_identity):
    user = login_as(make_user())
    delete_identity.side_effect = UpstreamFailure()

    response = delete(client)

    assert response.status_code == 500
    assert response.json()["detail"] == RETRY_LATER_MESSAGE
    db_session.expire_all()
    assert db_session.query(User).filter(User.id == user.id).count() == 1


def test_unknown_caller_is_401(client, auth_payload, delete_identity):
    auth_payload.update({"sub": "gone", "email": "gone@example.com"})

    assert delete(client).status_code == 401
    delete_identity.assert_not_awaited()


@pytest.mark.asyncio
async def test_admin_check_runs_before_phrase_check(db_session, make_user, delete_identity):
    admin = make_user(admin=True)

    with pytest.raises(Forbidden):
        await delete_own_account(db_session, admin, "wrong")


@pytest.mark.asyncio
async def test_service_rejects_wrong_phrase(db_session, make_user, delete_identity):
    with pytest.raises(ValidationFailed):
        await delete_own_account(db_session, make_user(), None)
