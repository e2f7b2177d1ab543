"""Group lifecycle and the membership state machine.

Per (group, user) there is at most one ``GroupMember`` row::

    (none) --join, PUBLIC-->   ACTIVE    (+1 current_members)
    (none) --join, PRIVATE-->  PENDING
    PENDING --approve-->       ACTIVE    (+1 current_members)
    PENDING --reject-->        REJECTED
    REJECTED --join-->         PENDING
    any --leave/remove-->      (row deleted, -1 if it was ACTIVE)

``Group.current_members`` always equals the number of ACTIVE rows. Every
mutation runs under a per-group ``asyncio.Lock`` and re-reads the group row
``FOR UPDATE`` so the counter and the rows are committed together.
"""
import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from studygroup.core.errors import (
    AlreadyMemberError,
    CannotRemoveAdminError,
    CannotRemoveSelfError,
    CourseNotFoundError,
    GroupFullError,
    GroupNotFoundError,
    InvalidStateError,
    MemberNotFoundError,
    NotAMemberError,
    NotAuthorizedError,
    NotEnrolledError,
    RequestAlreadyPendingError,
    UserNotFoundError,
    ValidationError,
)
from studygroup.models import (
    Group,
    GroupMember,
    GroupMemberRole,
    GroupMemberStatus,
    GroupPrivacy,
    User,
)
from studygroup.repositories import (
    ChatMessageRepository,
    CourseRepository,
    GroupMemberRepository,
    GroupRepository,
    UserRepository,
)
from studygroup.services.courses import EnrollmentService

logger = structlog.get_logger(__name__)


class GroupLocks:
    """One ``asyncio.Lock`` per group id, dropped once nobody holds a reference."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, group_id: int) -> asyncio.Lock:
        lock = self._locks.get(group_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[group_id] = lock
        return lock


group_locks = GroupLocks()


def is_active_admin(member: Optional[GroupMember]) -> bool:
    return (
        member is not None
        and member.role == GroupMemberRole.ADMIN
        and member.status == GroupMemberStatus.ACTIVE
    )


class GroupService:
    def __init__(self, db: AsyncSession, locks: GroupLocks = group_locks):
        self.db = db
        self.locks = locks
        self.users = UserRepository(db)
        self.courses = CourseRepository(db)
        self.groups = GroupRepository(db)
        self.members = GroupMemberRepository(db)
        self.messages = ChatMessageRepository(db)
        self.enrollment = EnrollmentService(db)

    @asynccontextmanager
    async def _atomic(self, group_id: int):
        """Serialize a read-check-write on one group and commit it as a unit."""
        async with self.locks.get(group_id):
            try:
                yield
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

    async def _require_user(self, user_id: int) -> User:
        user = await self.users.get(user_id)
        if not user:
            raise UserNotFoundError()
        return user

    async def _locked_group(self, group_id: int) -> Group:
        group = await self.groups.get_for_update(group_id)
        if not group:
            raise GroupNotFoundError()
        return group

    async def _require_admin(self, group_id: int, user_id: int, action: str) -> GroupMember:
        member = await self.members.get(group_id, user_id)
        if member is None:
            raise NotAuthorizedError("You are not a member of this group")
        if not is_active_admin(member):
            raise NotAuthorizedError(f"Only group admins can {action}")
        return member

    # --- queries

    async def get_group(self, group_id: int) -> Group:
        group = await self.groups.get(group_id)
        if not group:
            raise GroupNotFoundError()
        return group

    async def list_groups(self, search: Optional[str] = None, course_id: Optional[int] = None) -> Sequence[Group]:
        term = search.strip() if search else None
        if term:
            return await self.groups.list(search=term)
        if course_id is not None:
            if not await self.courses.get(course_id):
                raise CourseNotFoundError()
            return await self.groups.list(course_id=course_id)
        return await self.groups.list()

    async def user_groups(self, user_id: int) -> Sequence[Group]:
        await self._require_user(user_id)
        return await self.groups.active_for_user(user_id)

    async def recommended_groups(self, user_id: int) -> Sequence[Group]:
        """Open groups of the caller's courses they have no membership row in."""
        await self._require_user(user_id)
        course_ids = await self.enrollment.enrolled_course_ids(user_id)
        if not course_ids:
            return []
        return await self.groups.open_in_courses_excluding_member(course_ids, user_id)

    async def membership(self, user_id: int, group_id: int) -> Optional[GroupMember]:
        await self._require_user(user_id)
        await self.get_group(group_id)
        return await self.members.get(group_id, user_id)

    async def group_members(self, group_id: int) -> Sequence[User]:
        await self.get_group(group_id)
        return await self.members.active_users(group_id)

    async def pending_requests(self, admin_id: int, group_id: int) -> Sequence[GroupMember]:
        await self.get_group(group_id)
        await self._require_admin(group_id, admin_id, "view pending requests")
        return await self.members.with_status(group_id, GroupMemberStatus.PENDING)

    # --- lifecycle

    async def create_group(self, user_id: int, data: dict) -> Group:
        await self._require_user(user_id)
        course_id = data["course_id"]
        if not await self.courses.get(course_id):
            raise CourseNotFoundError()
        if not await self.enrollment.is_enrolled(user_id, course_id):
            raise NotEnrolledError("You must be enrolled in the course to create a group for it")

        try:
            group = await self.groups.add(Group(
                name=data["name"],
                description=data.get("description"),
                course_id=course_id,
                created_by=user_id,
                privacy=data.get("privacy") or GroupPrivacy.PUBLIC,
                max_members=data.get("max_members") or 10,
                current_members=1,
            ))
            await self.members.add(GroupMember(
                group_id=group.id,
                user_id=user_id,
                role=GroupMemberRole.ADMIN,
                status=GroupMemberStatus.ACTIVE,
            ))
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("group_created", group_id=group.id, course_id=course_id, user_id=user_id)
        return group

    async def update_group(self, user_id: int, group_id: int, data: dict) -> Group:
        async with self._atomic(group_id):
            group = await self._locked_group(group_id)
            await self._require_admin(group_id, user_id, "update the group")

            max_members = data.get("max_members")
            if max_members is not None and max_members < group.current_members:
                raise ValidationError(
                    f"max_members cannot be lower than the current member count ({group.current_members})"
                )

            for key in ("name", "description", "privacy", "max_members"):
                if key in data and data[key] is not None:
                    setattr(group, key, data[key])

        logger.info("group_updated", group_id=group_id, user_id=user_id)
        return group

    async def delete_group(self, user_id: int, group_id: int) -> None:
        async with self._atomic(group_id):
            await self._locked_group(group_id)
            await self._require_admin(group_id, user_id, "delete the group")
            await self._purge(group_id)

        logger.info("group_deleted", group_id=group_id, user_id=user_id)

    async def _purge(self, group_id: int) -> None:
        # children first so no row ever points at a missing group
        await self.messages.delete_for_group(group_id)
        await self.members.delete_for_group(group_id)
        await self.groups.delete(group_id)

    # --- membership

    async def join_group(self, user_id: int, group_id: int) -> GroupMember:
        await self._require_user(user_id)

        async with self._atomic(group_id):
            group = await self._locked_group(group_id)
            member = await self.members.get(group_id, user_id)

            if member is not None:
                if member.status == GroupMemberStatus.ACTIVE:
                    raise AlreadyMemberError()
                if member.status == GroupMemberStatus.PENDING:
                    raise RequestAlreadyPendingError()
                # REJECTED: re-apply in place
                member.status = GroupMemberStatus.PENDING
            else:
                if not await self.enrollment.is_enrolled(user_id, group.course_id):
                    raise NotEnrolledError("You must be enrolled in the course to join this group")
                if group.current_members >= group.max_members:
                    raise GroupFullError()

                status = (
                    GroupMemberStatus.ACTIVE
                    if group.privacy == GroupPrivacy.PUBLIC
                    else GroupMemberStatus.PENDING
                )
                member = await self.members.add(GroupMember(
                    group_id=group_id,
                    user_id=user_id,
                    role=GroupMemberRole.MEMBER,
                    status=status,
                ))
                if status == GroupMemberStatus.ACTIVE:
                    group.current_members += 1

        logger.info("group_joined", group_id=group_id, user_id=user_id, status=member.status.value)
        return member

    async def update_member_status(
        self,
        admin_id: int,
        group_id: int,
        user_id: int,
        status: GroupMemberStatus,
    ) -> GroupMember:
        """Approve (``ACTIVE``) or reject (``REJECTED``) a pending request."""
        if status not in (GroupMemberStatus.ACTIVE, GroupMemberStatus.REJECTED):
            raise ValidationError("Status must be ACTIVE or REJECTED")

        async with self._atomic(group_id):
            group = await self._locked_group(group_id)
            await self._require_admin(group_id, admin_id, "update member status")

            member = await self.members.get(group_id, user_id)
            if member is None:
                raise MemberNotFoundError("Member not found")
            if member.status != GroupMemberStatus.PENDING:
                raise InvalidStateError("Member has no pending join request")

            if status == GroupMemberStatus.ACTIVE:
                if group.current_members >= group.max_members:
                    raise GroupFullError()
                group.current_members += 1
            member.status = status

        logger.info(
            "member_status_updated",
            group_id=group_id,
            user_id=user_id,
            admin_id=admin_id,
            status=status.value,
        )
        return member

    async def leave_group(self, user_id: int, group_id: int) -> bool:
        """Delete the caller's membership. Returns True when the group was dissolved."""
        await self._require_user(user_id)

        async with self._atomic(group_id):
            group = await self._locked_group(group_id)
            member = await self.members.get(group_id, user_id)
            if member is None:
                raise NotAMemberError()

            dissolved = False
            if is_active_admin(member):
                admins = await self.members.active_admins(group_id)
                # a group never outlives its last admin
                dissolved = len(admins) == 1 and admins[0].id == member.id

            if dissolved:
                await self._purge(group_id)
            else:
                await self._drop_member(group, member)

        logger.info("group_left", group_id=group_id, user_id=user_id, group_deleted=dissolved)
        return dissolved

    async def remove_member(self, admin_id: int, group_id: int, user_id: int) -> None:
        async with self._atomic(group_id):
            group = await self._locked_group(group_id)
            await self._require_admin(group_id, admin_id, "remove members")

            if user_id == admin_id:
                raise CannotRemoveSelfError()

            await self._require_user(user_id)
            member = await self.members.get(group_id, user_id)
            if member is None:
                raise MemberNotFoundError()
            if member.role == GroupMemberRole.ADMIN:
                raise CannotRemoveAdminError()

            await self._drop_member(group, member)

        logger.info("member_removed", group_id=group_id, user_id=user_id, admin_id=admin_id)

    async def _drop_member(self, group: Group, member: GroupMember) -> None:
        was_active = member.status == GroupMemberStatus.ACTIVE
        await self.members.delete(member)
        if was_active:
            group.current_members -= 1
