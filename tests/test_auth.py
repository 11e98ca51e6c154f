"""Tests for authentication, tokens and password policy."""

import pytest

from blog_cms.models import User, UserRole, UserStatus
from blog_cms.schemas import PasswordChange, UserLogin, UserRegister
from blog_cms.services import auth_service, user_service
from blog_cms.utils.exceptions import (
    ConflictError,
    InvalidCredentials,
    Unauthorized,
    ValidationError,
)
from blog_cms.utils.security import (
    create_access_token,
    decode_token,
    validate_admin_password,
    validate_password_strength,
)


def registration(**overrides) -> UserRegister:
    data = {
        "username": "newbie",
        "email": "newbie@example.com",
        "password": "Secret123",
        "confirm_password": "Secret123",
        "first_name": "New",
        "last_name": "Reader",
    }
    data.update(overrides)
    return UserRegister(**data)


@pytest.mark.unit
class TestPasswordPolicy:
    """Strength rules for self-service and admin-set passwords."""

    @pytest.mark.parametrize("password", ["short", "alllowercase1", "ALLUPPER1", "NoDigitsHere"])
    def test_weak_passwords(self, password):
        with pytest.raises(ValidationError):
            validate_password_strength(password, password)

    def test_confirmation_must_match(self):
        with pytest.raises(ValidationError, match="confirmation"):
            validate_password_strength("Secret123", "Secret124")

    def test_strong_password(self):
        validate_password_strength("Secret123", "Secret123")

    def test_admin_policy_only_checks_length(self):
        validate_admin_password("simple")
        with pytest.raises(ValidationError):
            validate_admin_password("abc")


@pytest.mark.unit
class TestRegistration:

    @pytest.mark.asyncio
    async def test_register_creates_active_user(self, db_session, fake_redis):
        tokens = await auth_service.register(db_session, registration())

        user = db_session.query(User).filter(User.email == "newbie@example.com").one()
        assert user.role == UserRole.USER
        assert user.status == UserStatus.ACTIVE
        assert user.password_hash != "Secret123"
        assert decode_token(tokens["access_token"])["sub"] == str(user.id)

    @pytest.mark.asyncio
    async def test_duplicate_email(self, db_session, test_user):
        with pytest.raises(ConflictError, match="Email already exists"):
            await user_service.register_user(db_session, registration(email=test_user.email))

    @pytest.mark.asyncio
    async def test_email_is_stored_lowercase(self, db_session, fake_redis):
        await auth_service.register(db_session, registration(email="  NewBie@Example.COM "))

        user = db_session.query(User).filter(User.username == "newbie").one()
        assert user.email == "newbie@example.com"

    @pytest.mark.asyncio
    async def test_duplicate_email_in_other_case(self, db_session, fake_redis):
        await auth_service.register(db_session, registration(email="Alice@Example.com"))

        with pytest.raises(ConflictError, match="Email already exists"):
            await user_service.register_user(
                db_session, registration(username="alice2", email="alice@example.com")
            )

        assert db_session.query(User).count() == 1

    @pytest.mark.asyncio
    async def test_duplicate_username(self, db_session, test_user):
        with pytest.raises(ConflictError, match="Username already exists"):
            await user_service.register_user(db_session, registration(username=test_user.username))


@pytest.mark.unit
class TestAuthenticate:

    @pytest.mark.asyncio
    async def test_success_updates_login_stats(self, db_session, test_user):
        assert test_user.login_count == 0

        user = await auth_service.authenticate(db_session, test_user.email, "Password1")
        user = await auth_service.authenticate(db_session, test_user.email, "Password1")

        assert user.login_count == 2
        assert user.last_login_at is not None

    @pytest.mark.asyncio
    async def test_email_lookup_ignores_case(self, db_session, test_user):
        user = await auth_service.authenticate(db_session, " Reader@EXAMPLE.com", "Password1")

        assert user.id == test_user.id

    @pytest.mark.asyncio
    async def test_wrong_password(self, db_session, test_user):
        with pytest.raises(InvalidCredentials):
            await auth_service.authenticate(db_session, test_user.email, "Wrong1234")

    @pytest.mark.asyncio
    async def test_unknown_email(self, db_session):
        with pytest.raises(InvalidCredentials):
            await auth_service.authenticate(db_session, "ghost@example.com", "Password1")

    @pytest.mark.asyncio
    async def test_inactive_user_looks_like_bad_credentials(self, db_session, make_user):
        user = make_user(status=UserStatus.INACTIVE)

        with pytest.raises(InvalidCredentials) as exc_info:
            await auth_service.authenticate(db_session, user.email, "Password1")

        assert exc_info.value.detail == "Invalid email or password"


@pytest.mark.unit
class TestTokens:

    @pytest.mark.asyncio
    async def test_login_refresh_logout(self, db_session, test_user, fake_redis):
        tokens = await auth_service.login(
            db_session, UserLogin(email=test_user.email, password="Password1")
        )

        refreshed = await auth_service.refresh_access_token(db_session, tokens["refresh_token"])
        assert decode_token(refreshed["access_token"])["token_type"] == "access"

        await auth_service.logout(tokens["refresh_token"])

        with pytest.raises(Unauthorized):
            await auth_service.refresh_access_token(db_session, tokens["refresh_token"])

    @pytest.mark.asyncio
    async def test_access_token_cannot_refresh(self, db_session, test_user, fake_redis):
        tokens = await auth_service.issue_tokens(test_user)

        with pytest.raises(Unauthorized):
            await auth_service.refresh_access_token(db_session, tokens["access_token"])

    @pytest.mark.asyncio
    async def test_refresh_without_redis_fails_closed(self, db_session, test_user):
        tokens = await auth_service.issue_tokens(test_user)

        with pytest.raises(Unauthorized):
            await auth_service.refresh_access_token(db_session, tokens["refresh_token"])

    @pytest.mark.asyncio
    async def test_password_change_revokes_refresh_tokens(
        self, db_session, test_user, fake_redis
    ):
        tokens = await auth_service.issue_tokens(test_user)

        await user_service.change_password(
            db_session,
            test_user,
            PasswordChange(
                current_password="Password1",
                new_password="NewSecret1",
                confirm_new_password="NewSecret1",
            ),
        )

        with pytest.raises(Unauthorized):
            await auth_service.refresh_access_token(db_session, tokens["refresh_token"])
        user = await auth_service.authenticate(db_session, test_user.email, "NewSecret1")
        assert user.id == test_user.id

    @pytest.mark.asyncio
    async def test_wrong_current_password(self, db_session, test_user):
        with pytest.raises(ValidationError, match="Current password is incorrect"):
            await user_service.change_password(
                db_session,
                test_user,
                PasswordChange(
                    current_password="Nope12345",
                    new_password="NewSecret1",
                    confirm_new_password="NewSecret1",
                ),
            )

    def test_resolve_user_rejects_inactive_and_garbage(self, db_session, make_user):
        active = make_user()
        inactive = make_user(status=UserStatus.INACTIVE)

        def token(user):
            return create_access_token(data={"sub": str(user.id)})

        assert auth_service.resolve_user(db_session, token(active)).id == active.id
        assert auth_service.resolve_user(db_session, token(inactive)) is None
        assert auth_service.resolve_user(db_session, "not-a-jwt") is None
