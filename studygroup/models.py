import enum
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from studygroup.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class GroupPrivacy(str, enum.Enum):
    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"


class GroupMemberRole(str, enum.Enum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class GroupMemberStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    PENDING = "PENDING"
    REJECTED = "REJECTED"


class MessageType(str, enum.Enum):
    TEXT = "TEXT"
    LINK = "LINK"
    IMAGE = "IMAGE"
    PDF = "PDF"
    DOCUMENT = "DOCUMENT"
    EXCEL = "EXCEL"
    POWERPOINT = "POWERPOINT"


class User(Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(String(32), default="student", nullable=False)  # "student" | "admin"
    is_active = Column(Boolean, default=True)

    secondary_school = Column(String(255))
    secondary_school_passing_year = Column(Integer)
    secondary_school_percentage = Column(Float)
    higher_secondary_school = Column(String(255))
    higher_secondary_passing_year = Column(Integer)
    higher_secondary_percentage = Column(Float)
    university_name = Column(String(255))
    university_passing_year = Column(Integer)
    university_passing_gpa = Column(Float)
    bio = Column(Text)
    avatar_url = Column(String(1024))

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Course(Base):
    __tablename__ = 'courses'

    id = Column(Integer, primary_key=True, index=True)
    course_code = Column(String(20), unique=True, index=True, nullable=False)
    course_name = Column(String(100), nullable=False)
    description = Column(String(500))
    credits = Column(Integer)
    department = Column(String(100), index=True)


# Enrollment: one row per (user, course)
class UserCourse(Base):
    __tablename__ = 'user_courses'
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_user_courses_user_course"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey('courses.id'), nullable=False, index=True)
    enrolled_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class Group(Base):
    __tablename__ = 'study_groups'
    __table_args__ = (
        CheckConstraint(
            "current_members >= 0 AND current_members <= max_members",
            name="ck_study_groups_member_count",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), index=True, nullable=False)
    description = Column(String(500))
    course_id = Column(Integer, ForeignKey('courses.id'), nullable=False, index=True)
    created_by = Column(Integer, ForeignKey('users.id'), nullable=False)  # user who created the group
    privacy = Column(Enum(GroupPrivacy), default=GroupPrivacy.PUBLIC, nullable=False)
    max_members = Column(Integer, default=10, nullable=False)
    current_members = Column(Integer, default=1, nullable=False)  # ACTIVE memberships only
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


# The row is kept across status changes (PENDING -> ACTIVE/REJECTED -> PENDING)
# and deleted when the user leaves or is removed.
class GroupMember(Base):
    __tablename__ = 'group_members'
    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
    )

    id = Column(Integer, primary_key=True, index=True)  # membership ID
    group_id = Column(Integer, ForeignKey('study_groups.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    role = Column(Enum(GroupMemberRole), default=GroupMemberRole.MEMBER, nullable=False)
    status = Column(Enum(GroupMemberStatus), default=GroupMemberStatus.ACTIVE, nullable=False)
    joined_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class ChatMessage(Base):
    __tablename__ = 'chat_messages'
    __table_args__ = (
        Index("ix_chat_messages_group_created", "group_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey('study_groups.id'), nullable=False)
    sender_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    type = Column(Enum(MessageType), default=MessageType.TEXT, nullable=False)
    content = Column(Text)
    file_url = Column(String(1024))
    file_name = Column(String(255))  # link title for LINK messages
    file_type = Column(String(255))
    file_size = Column(BigInteger)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class PasswordResetToken(Base):
    __tablename__ = 'password_reset_tokens'

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(64), unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey('users.id'), unique=True, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used = Column(Boolean, default=False, nullable=False)

    def is_expired(self, now: datetime | None = None) -> bool:
        return as_utc(self.expires_at) < (now or utcnow())
