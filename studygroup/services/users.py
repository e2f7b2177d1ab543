import uuid
from datetime import timedelta
from typing import Optional, Sequence

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from studygroup.core import config
from studygroup.core.config import AVATAR_MAX_BYTES, PASSWORD_RESET_TTL_HOURS
from studygroup.core.errors import (
    AlreadyExistsError,
    NotAuthorizedError,
    TokenGenerationFailedError,
    UserNotFoundError,
    ValidationError,
)
from studygroup.core.security import hash_password, verify_password
from studygroup.models import PasswordResetToken, User, utcnow
from studygroup.repositories import PasswordResetTokenRepository, UserRepository
from studygroup.services.mail import Mailer
from studygroup.services.media import AVATAR_FOLDER, MediaStore

logger = structlog.get_logger(__name__)

RESET_TOKEN_MAX_ATTEMPTS = 3

PROFILE_FIELDS = (
    "name",
    "secondary_school",
    "secondary_school_passing_year",
    "secondary_school_percentage",
    "higher_secondary_school",
    "higher_secondary_passing_year",
    "higher_secondary_percentage",
    "university_name",
    "university_passing_year",
    "university_passing_gpa",
    "bio",
)


def new_reset_token() -> str:
    return str(uuid.uuid4())


class UserService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.users = UserRepository(db)
        self.tokens = PasswordResetTokenRepository(db)

    async def get(self, user_id: int) -> User:
        user = await self.users.get(user_id)
        if not user:
            raise UserNotFoundError()
        return user

    async def register(self, name: str, email: str, password: str) -> User:
        if await self.users.get_by_email(email):
            raise AlreadyExistsError("Email already exists")

        email = email.lower()
        role = "admin" if email in config.ADMIN_EMAILS else "student"
        user = User(name=name.strip(), email=email, hashed_password=hash_password(password), role=role)
        try:
            await self.users.add(user)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise AlreadyExistsError("Email already exists")

        logger.info("user_registered", user_id=user.id, role=user.role)
        return user

    async def promote_admins(self, emails: Sequence[str]) -> int:
        """Give existing accounts listed in ``emails`` the admin role."""
        promoted = 0
        for email in emails:
            user = await self.users.get_by_email(email)
            if user and user.role != "admin":
                user.role = "admin"
                promoted += 1
        await self.db.commit()
        if promoted:
            logger.info("admins_promoted", count=promoted)
        return promoted

    async def authenticate(self, email: str, password: str) -> User:
        user = await self.users.get_by_email(email)
        if not user or not verify_password(password, user.hashed_password):
            raise NotAuthorizedError("Invalid email or password")
        return user

    async def update_password(self, user_id: int, current_password: str, new_password: str) -> None:
        user = await self.get(user_id)
        if not verify_password(current_password, user.hashed_password):
            raise ValidationError("Current password is incorrect")

        user.hashed_password = hash_password(new_password)
        await self.db.commit()
        logger.info("password_updated", user_id=user_id)

    # --- password reset

    async def initiate_password_reset(self, email: str, mailer: Mailer) -> None:
        user = await self.users.get_by_email(email)
        if not user:
            raise UserNotFoundError()

        await self.tokens.delete_for_user(user.id)
        await self.tokens.delete_expired()

        expires_at = utcnow() + timedelta(hours=PASSWORD_RESET_TTL_HOURS)
        for attempt in range(1, RESET_TOKEN_MAX_ATTEMPTS + 1):
            token = new_reset_token()
            try:
                async with self.db.begin_nested():
                    self.db.add(PasswordResetToken(token=token, user_id=user.id, expires_at=expires_at))
                break
            except IntegrityError:
                logger.warning("reset_token_collision", user_id=user.id, attempt=attempt)
        else:
            await self.db.rollback()
            raise TokenGenerationFailedError(
                f"Failed to generate unique token after {RESET_TOKEN_MAX_ATTEMPTS} attempts"
            )

        await self.db.commit()
        logger.info("password_reset_requested", user_id=user.id)
        await mailer.send_password_reset(user.email, token)

    async def _valid_reset_token(self, token: str) -> PasswordResetToken:
        reset_token = await self.tokens.get_by_token(token)
        if not reset_token:
            raise ValidationError("Invalid reset token")
        if reset_token.is_expired():
            raise ValidationError("Reset token has expired")
        if reset_token.used:
            raise ValidationError("Reset token already used")
        return reset_token

    async def reset_password(self, token: str, new_password: str) -> None:
        reset_token = await self._valid_reset_token(token)
        user = await self.get(reset_token.user_id)

        user.hashed_password = hash_password(new_password)
        reset_token.used = True
        await self.db.commit()
        logger.info("password_reset_completed", user_id=user.id)

    # --- profile

    async def update_profile(self, user_id: int, fields: dict) -> User:
        user = await self.get(user_id)
        for key in PROFILE_FIELDS:
            if key not in fields:
                continue
            # name is required; every other field may be cleared
            if key == "name" and not fields[key]:
                continue
            setattr(user, key, fields[key])
        await self.db.commit()
        return user

    async def replace_avatar(
        self,
        user_id: int,
        media: MediaStore,
        data: bytes,
        content_type: Optional[str],
        filename: Optional[str] = None,
    ) -> str:
        if not data:
            raise ValidationError("File is empty")
        if not content_type or not content_type.startswith("image/"):
            raise ValidationError("Only image files are allowed")
        if len(data) > AVATAR_MAX_BYTES:
            raise ValidationError("File size must be less than 5MB")

        user = await self.get(user_id)
        if media.owns(user.avatar_url):
            await media.delete(user.avatar_url)

        url = await media.store(data, content_type, filename, folder=AVATAR_FOLDER)
        user.avatar_url = url
        await self.db.commit()
        logger.info("avatar_updated", user_id=user_id)
        return url

    async def remove_avatar(self, user_id: int, media: MediaStore) -> None:
        user = await self.get(user_id)
        if media.owns(user.avatar_url):
            await media.delete(user.avatar_url)

        user.avatar_url = None
        await self.db.commit()
        logger.info("avatar_removed", user_id=user_id)
