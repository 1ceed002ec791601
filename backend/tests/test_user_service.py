import pytest
from app.core.exceptions import DuplicateIdentity, ValidationError
from app.models.user import User
from app.services.user_service import UserService, is_email, normalize_email


def make_user(db, **overrides):
    fields = {
        "first_name": "Alice",
        "last_name": "Liddell",
        "username": "alice",
        "email": "Alice@X.com",
        "password": "pw123456",
    }
    fields.update(overrides)
    return UserService(db).create(**fields)


def test_create_stores_lowercase_email_and_hash(db_session):
    user = make_user(db_session)

    assert user.id is not None
    assert user.email == "alice@x.com"
    assert user.role == "user"
    assert user.is_active is True
    assert user.hashed_password != "pw123456"
    assert UserService.verify_password(user, "pw123456")
    assert not UserService.verify_password(user, "pw1234567")


def test_duplicate_email_in_any_case_is_rejected(db_session):
    make_user(db_session)

    with pytest.raises(DuplicateIdentity) as exc_info:
        make_user(db_session, username="alice2", email="ALICE@x.COM")

    assert exc_info.value.field == "email"
    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == "Email already registered"


def test_duplicate_username_is_rejected(db_session):
    make_user(db_session)

    with pytest.raises(DuplicateIdentity) as exc_info:
        make_user(db_session, email="other@x.com")

    assert exc_info.value.field == "username"
    assert exc_info.value.detail == "Username already taken"


def test_short_password_is_rejected_before_anything_is_stored(db_session):
    with pytest.raises(ValidationError) as exc_info:
        make_user(db_session, password="short7!")

    assert "at least 8 characters" in exc_info.value.detail
    assert UserService(db_session).get_by_email("alice@x.com") is None


def test_find_by_identifier_email_or_username(db_session):
    user = make_user(db_session)
    users = UserService(db_session)

    assert users.find_by_identifier("ALICE@x.com").id == user.id
    assert users.find_by_identifier("  alice@x.com ").id == user.id
    assert users.find_by_identifier("alice").id == user.id
    # Username lookups are exact
    assert users.find_by_identifier("Alice") is None
    assert users.find_by_identifier("bob@x.com") is None
    assert users.find_by_identifier("   ") is None


def test_set_password_replaces_hash(db_session):
    user = make_user(db_session)
    old_hash = user.hashed_password

    UserService(db_session).set_password(user, "new-password")

    db_session.refresh(user)
    assert user.hashed_password != old_hash
    assert UserService.verify_password(user, "new-password")
    assert not UserService.verify_password(user, "pw123456")


@pytest.mark.parametrize("identifier,expected", [
    ("alice@x.com", True),
    ("a.b+c@sub.domain.org", True),
    ("alice", False),
    ("alice@x", False),
    ("ali ce@x.com", False),
])
def test_is_email(identifier, expected):
    assert is_email(identifier) is expected


def test_normalize_email():
    assert normalize_email("  Bob@Example.COM ") == "bob@example.com"


def test_email_collision_past_the_precheck_is_caught_by_unique_index(db_session, monkeypatch):
    make_user(db_session)
    # Simulate a concurrent registration that committed after our check ran
    monkeypatch.setattr(UserService, "email_taken", lambda self, email: False)

    with pytest.raises(DuplicateIdentity) as exc_info:
        make_user(db_session, username="alice2")

    assert exc_info.value.field == "email"
    assert db_session.query(User).count() == 1


def test_username_collision_past_the_precheck_is_caught_by_unique_index(db_session, monkeypatch):
    make_user(db_session)
    monkeypatch.setattr(UserService, "get_by_username", lambda self, username: None)

    with pytest.raises(DuplicateIdentity) as exc_info:
        make_user(db_session, email="other@x.com")

    assert exc_info.value.field == "username"
    assert db_session.query(User).count() == 1
