"""Typed data access for each table.

Repositories only read and stage writes on the session they were given; the
services decide when to commit, so one service call maps to one transaction.
"""
from typing import Optional, Sequence

from sqlalchemy import select, delete, func, or_, and_, desc
from sqlalchemy.ext.asyncio import AsyncSession

from studygroup.models import (
    User,
    Course,
    UserCourse,
    Group,
    GroupMember,
    GroupMemberRole,
    GroupMemberStatus,
    ChatMessage,
    PasswordResetToken,
    utcnow,
)


def _like(term: str) -> str:
    return f"%{term.lower()}%"


class UserRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: int) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(func.lower(User.email) == email.lower()))
        return result.scalar_one_or_none()

    async def add(self, user: User) -> User:
        self.db.add(user)
        await self.db.flush()
        return user


class CourseRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, course_id: int) -> Optional[Course]:
        return await self.db.get(Course, course_id)

    async def get_by_code(self, course_code: str) -> Optional[Course]:
        result = await self.db.execute(select(Course).where(Course.course_code == course_code))
        return result.scalar_one_or_none()

    async def list(self, search: Optional[str] = None) -> Sequence[Course]:
        query = select(Course).order_by(Course.course_code)
        if search:
            query = query.where(
                or_(
                    func.lower(Course.course_code).like(_like(search)),
                    func.lower(Course.course_name).like(_like(search)),
                )
            )
        result = await self.db.execute(query)
        return result.scalars().all()

    async def count(self) -> int:
        result = await self.db.execute(select(func.count(Course.id)))
        return result.scalar_one()

    async def add(self, course: Course) -> Course:
        self.db.add(course)
        await self.db.flush()
        return course

    async def delete(self, course: Course) -> None:
        await self.db.delete(course)


class UserCourseRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: int, course_id: int) -> Optional[UserCourse]:
        result = await self.db.execute(
            select(UserCourse).where(
                and_(UserCourse.user_id == user_id, UserCourse.course_id == course_id)
            )
        )
        return result.scalar_one_or_none()

    async def exists(self, user_id: int, course_id: int) -> bool:
        return await self.get(user_id, course_id) is not None

    async def has_enrollments(self, course_id: int) -> bool:
        result = await self.db.execute(
            select(UserCourse.id).where(UserCourse.course_id == course_id).limit(1)
        )
        return result.first() is not None

    async def courses_for_user(self, user_id: int) -> Sequence[Course]:
        result = await self.db.execute(
            select(Course)
            .join(UserCourse, UserCourse.course_id == Course.id)
            .where(UserCourse.user_id == user_id)
            .order_by(Course.course_code)
        )
        return result.scalars().all()

    async def course_ids_for_user(self, user_id: int) -> list[int]:
        result = await self.db.execute(
            select(UserCourse.course_id).where(UserCourse.user_id == user_id)
        )
        return list(result.scalars().all())

    async def peer_enrollments(self, course_ids: Sequence[int], user_id: int) -> Sequence[tuple[User, Course]]:
        """(peer, course) pairs for every other user enrolled in one of ``course_ids``."""
        result = await self.db.execute(
            select(User, Course)
            .join(UserCourse, UserCourse.user_id == User.id)
            .join(Course, Course.id == UserCourse.course_id)
            .where(and_(UserCourse.course_id.in_(course_ids), UserCourse.user_id != user_id))
            .order_by(User.id, Course.course_code)
        )
        return result.all()

    async def peers_in_course(self, course_id: int, user_id: int) -> Sequence[User]:
        result = await self.db.execute(
            select(User)
            .join(UserCourse, UserCourse.user_id == User.id)
            .where(and_(UserCourse.course_id == course_id, UserCourse.user_id != user_id))
            .order_by(User.name)
        )
        return result.scalars().all()

    async def add(self, enrollment: UserCourse) -> UserCourse:
        self.db.add(enrollment)
        await self.db.flush()
        return enrollment

    async def delete(self, enrollment: UserCourse) -> None:
        await self.db.delete(enrollment)


class GroupRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, group_id: int) -> Optional[Group]:
        return await self.db.get(Group, group_id)

    async def get_for_update(self, group_id: int) -> Optional[Group]:
        # Row lock on PostgreSQL; SQLite ignores FOR UPDATE
        result = await self.db.execute(
            select(Group)
            .where(Group.id == group_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list(self, search: Optional[str] = None, course_id: Optional[int] = None) -> Sequence[Group]:
        query = select(Group).order_by(desc(Group.created_at), desc(Group.id))
        if search:
            query = query.where(
                or_(
                    func.lower(Group.name).like(_like(search)),
                    func.lower(Group.description).like(_like(search)),
                )
            )
        if course_id is not None:
            query = query.where(Group.course_id == course_id)
        result = await self.db.execute(query)
        return result.scalars().all()

    async def active_for_user(self, user_id: int) -> Sequence[Group]:
        result = await self.db.execute(
            select(Group)
            .join(GroupMember, GroupMember.group_id == Group.id)
            .where(
                and_(
                    GroupMember.user_id == user_id,
                    GroupMember.status == GroupMemberStatus.ACTIVE,
                )
            )
            .order_by(Group.name)
        )
        return result.scalars().all()

    async def exists_for_course(self, course_id: int) -> bool:
        result = await self.db.execute(select(Group.id).where(Group.course_id == course_id).limit(1))
        return result.first() is not None

    async def open_in_courses_excluding_member(self, course_ids: Sequence[int], user_id: int) -> Sequence[Group]:
        """Groups of ``course_ids`` with a free slot where ``user_id`` has no membership row."""
        memberships = select(GroupMember.group_id).where(GroupMember.user_id == user_id)
        result = await self.db.execute(
            select(Group)
            .where(
                and_(
                    Group.course_id.in_(course_ids),
                    Group.current_members < Group.max_members,
                    Group.id.not_in(memberships),
                )
            )
            .order_by(desc(Group.created_at), desc(Group.id))
        )
        return result.scalars().all()

    async def add(self, group: Group) -> Group:
        self.db.add(group)
        await self.db.flush()
        return group

    async def delete(self, group_id: int) -> None:
        await self.db.execute(delete(Group).where(Group.id == group_id))


class GroupMemberRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, group_id: int, user_id: int) -> Optional[GroupMember]:
        result = await self.db.execute(
            select(GroupMember).where(
                and_(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
            )
        )
        return result.scalar_one_or_none()

    async def active_admins(self, group_id: int) -> Sequence[GroupMember]:
        result = await self.db.execute(
            select(GroupMember).where(
                and_(
                    GroupMember.group_id == group_id,
                    GroupMember.role == GroupMemberRole.ADMIN,
                    GroupMember.status == GroupMemberStatus.ACTIVE,
                )
            )
        )
        return result.scalars().all()

    async def with_status(self, group_id: int, status: GroupMemberStatus) -> Sequence[GroupMember]:
        result = await self.db.execute(
            select(GroupMember)
            .where(and_(GroupMember.group_id == group_id, GroupMember.status == status))
            .order_by(GroupMember.joined_at, GroupMember.id)
        )
        return result.scalars().all()

    async def active_users(self, group_id: int) -> Sequence[User]:
        result = await self.db.execute(
            select(User)
            .join(GroupMember, GroupMember.user_id == User.id)
            .where(
                and_(
                    GroupMember.group_id == group_id,
                    GroupMember.status == GroupMemberStatus.ACTIVE,
                )
            )
            .order_by(GroupMember.joined_at, GroupMember.id)
        )
        return result.scalars().all()

    async def count_active(self, group_id: int) -> int:
        result = await self.db.execute(
            select(func.count(GroupMember.id)).where(
                and_(
                    GroupMember.group_id == group_id,
                    GroupMember.status == GroupMemberStatus.ACTIVE,
                )
            )
        )
        return result.scalar_one()

    async def add(self, member: GroupMember) -> GroupMember:
        self.db.add(member)
        await self.db.flush()
        return member

    async def delete(self, member: GroupMember) -> None:
        await self.db.delete(member)
        await self.db.flush()

    async def delete_for_group(self, group_id: int) -> None:
        await self.db.execute(delete(GroupMember).where(GroupMember.group_id == group_id))


class ChatMessageRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def add(self, message: ChatMessage) -> ChatMessage:
        self.db.add(message)
        await self.db.flush()
        return message

    async def page_for_group(self, group_id: int, page: int, size: int) -> Sequence[ChatMessage]:
        # Newest first; equal timestamps fall back to insertion order
        result = await self.db.execute(
            select(ChatMessage)
            .where(ChatMessage.group_id == group_id)
            .order_by(desc(ChatMessage.created_at), desc(ChatMessage.id))
            .offset(page * size)
            .limit(size)
        )
        return result.scalars().all()

    async def delete_for_group(self, group_id: int) -> None:
        await self.db.execute(delete(ChatMessage).where(ChatMessage.group_id == group_id))


class PasswordResetTokenRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_token(self, token: str) -> Optional[PasswordResetToken]:
        result = await self.db.execute(
            select(PasswordResetToken).where(PasswordResetToken.token == token)
        )
        return result.scalar_one_or_none()

    async def delete_for_user(self, user_id: int) -> None:
        await self.db.execute(
            delete(PasswordResetToken).where(PasswordResetToken.user_id == user_id)
        )

    async def delete_expired(self) -> None:
        await self.db.execute(
            delete(PasswordResetToken).where(
                or_(PasswordResetToken.expires_at < utcnow(), PasswordResetToken.used.is_(True))
            )
        )
