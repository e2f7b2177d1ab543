from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from studygroup.models import GroupMemberRole, GroupMemberStatus, GroupPrivacy, MessageType


# --- auth

# This defines what the client must send to create a new user
class UserCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


# This defines what the client will receive when requesting user info
class UserOut(BaseModel):
    id: int
    name: str
    email: str
    role: str
    avatar_url: Optional[str] = None
    bio: Optional[str] = None

    class Config:
        from_attributes = True


class ProfileOut(UserOut):
    secondary_school: Optional[str] = None
    secondary_school_passing_year: Optional[int] = None
    secondary_school_percentage: Optional[float] = None
    higher_secondary_school: Optional[str] = None
    higher_secondary_passing_year: Optional[int] = None
    higher_secondary_percentage: Optional[float] = None
    university_name: Optional[str] = None
    university_passing_year: Optional[int] = None
    university_passing_gpa: Optional[float] = None
    created_at: datetime
    updated_at: datetime


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str = Field(min_length=6)


class UpdatePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6)


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    secondary_school: Optional[str] = None
    secondary_school_passing_year: Optional[int] = None
    secondary_school_percentage: Optional[float] = None
    higher_secondary_school: Optional[str] = None
    higher_secondary_passing_year: Optional[int] = None
    higher_secondary_percentage: Optional[float] = None
    university_name: Optional[str] = None
    university_passing_year: Optional[int] = None
    university_passing_gpa: Optional[float] = None
    bio: Optional[str] = None


class AvatarOut(BaseModel):
    avatar_url: Optional[str] = None


class MessageOut(BaseModel):
    message: str


# --- courses

class CourseCreate(BaseModel):
    course_code: str = Field(min_length=1, max_length=20)
    course_name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    credits: Optional[int] = Field(default=None, ge=0)
    department: Optional[str] = Field(default=None, max_length=100)


class CourseUpdate(BaseModel):
    course_code: Optional[str] = Field(default=None, min_length=1, max_length=20)
    course_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    credits: Optional[int] = Field(default=None, ge=0)
    department: Optional[str] = Field(default=None, max_length=100)


class CourseOut(BaseModel):
    id: int
    course_code: str
    course_name: str
    description: Optional[str] = None
    credits: Optional[int] = None
    department: Optional[str] = None

    class Config:
        from_attributes = True


class PeerOut(BaseModel):
    user: UserOut
    common_courses: list[CourseOut]

    class Config:
        from_attributes = True


# --- groups

class GroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    course_id: int
    privacy: GroupPrivacy = GroupPrivacy.PUBLIC
    max_members: int = Field(default=10, ge=1, le=500)


class GroupUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    privacy: Optional[GroupPrivacy] = None
    max_members: Optional[int] = Field(default=None, ge=1, le=500)


class GroupOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    course_id: int
    created_by: int
    privacy: GroupPrivacy
    max_members: int
    current_members: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class MembershipOut(BaseModel):
    id: int
    group_id: int
    user_id: int
    role: GroupMemberRole
    status: GroupMemberStatus
    joined_at: datetime

    class Config:
        from_attributes = True


class MembershipStatusOut(BaseModel):
    status: str  # a GroupMemberStatus value or "NOT_MEMBER"
    role: Optional[GroupMemberRole] = None
    membership: Optional[MembershipOut] = None


class MemberStatusUpdate(BaseModel):
    status: GroupMemberStatus


class LeaveOut(BaseModel):
    message: str
    group_deleted: bool


# --- chat

class ChatMessageCreate(BaseModel):
    content: Optional[str] = None
    type: MessageType = MessageType.TEXT
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = Field(default=None, ge=0)


class FileMessageCreate(BaseModel):
    file_url: str = Field(min_length=1)
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = Field(default=None, ge=0)
    caption: Optional[str] = None


class ShareLinkCreate(BaseModel):
    url: str = Field(min_length=1)
    title: Optional[str] = None


class ChatMessageOut(BaseModel):
    id: int
    group_id: int
    sender_id: int
    type: MessageType
    content: Optional[str] = None
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class UploadOut(BaseModel):
    file_url: str
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    file_size: int
    caption: Optional[str] = None
