from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from studygroup.database import get_db
from studygroup.deps.auth import get_current_user
from studygroup.models import User
from studygroup.schemas import (
    GroupCreate,
    GroupOut,
    GroupUpdate,
    LeaveOut,
    MembershipOut,
    MembershipStatusOut,
    MemberStatusUpdate,
    MessageOut,
    UserOut,
)
from studygroup.services.groups import GroupService

router = APIRouter()


@router.get("", response_model=list[GroupOut])
async def list_groups(
    search: Optional[str] = None,
    course_id: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await GroupService(db).list_groups(search=search, course_id=course_id)


@router.post("", response_model=GroupOut, status_code=201)
async def create_group(
    group: GroupCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await GroupService(db).create_group(current_user.id, group.model_dump())


@router.get("/my-groups", response_model=list[GroupOut])
async def list_user_groups(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await GroupService(db).user_groups(current_user.id)


@router.get("/recommended", response_model=list[GroupOut])
async def recommended_groups(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await GroupService(db).recommended_groups(current_user.id)


@router.get("/{group_id}", response_model=GroupOut)
async def get_group(
    group_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await GroupService(db).get_group(group_id)


@router.put("/{group_id}", response_model=GroupOut)
async def update_group(
    group_id: int,
    group: GroupUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await GroupService(db).update_group(current_user.id, group_id, group.model_dump(exclude_unset=True))


@router.delete("/{group_id}", response_model=MessageOut)
async def delete_group(
    group_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await GroupService(db).delete_group(current_user.id, group_id)
    return {"message": "Group deleted successfully"}


@router.post("/{group_id}/join", response_model=MembershipOut)
async def join_group(
    group_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await GroupService(db).join_group(current_user.id, group_id)


@router.post("/{group_id}/leave", response_model=LeaveOut)
async def leave_group(
    group_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    dissolved = await GroupService(db).leave_group(current_user.id, group_id)
    message = "Group deleted as you were the only admin" if dissolved else "Successfully left the group"
    return {"message": message, "group_deleted": dissolved}


@router.get("/{group_id}/members", response_model=list[UserOut])
async def group_members(
    group_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await GroupService(db).group_members(group_id)


@router.get("/{group_id}/pending-requests", response_model=list[MembershipOut])
async def pending_requests(
    group_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await GroupService(db).pending_requests(current_user.id, group_id)


@router.post("/{group_id}/requests/{user_id}", response_model=MembershipOut)
async def update_member_status(
    group_id: int,
    user_id: int,
    body: MemberStatusUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await GroupService(db).update_member_status(current_user.id, group_id, user_id, body.status)


@router.get("/{group_id}/my-membership", response_model=MembershipStatusOut)
async def my_membership(
    group_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    member = await GroupService(db).membership(current_user.id, group_id)
    if member is None:
        return {"status": "NOT_MEMBER"}
    return {"status": member.status.value, "role": member.role, "membership": MembershipOut.model_validate(member)}


@router.delete("/{group_id}/members/{user_id}", response_model=MessageOut)
async def remove_member(
    group_id: int,
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await GroupService(db).remove_member(current_user.id, group_id, user_id)
    return {"message": "Member removed successfully"}
