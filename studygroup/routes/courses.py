from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from studygroup.database import get_db
from studygroup.deps.auth import get_current_user, require_admin
from studygroup.models import User
from studygroup.schemas import CourseCreate, CourseOut, CourseUpdate, MessageOut, PeerOut, UserOut
from studygroup.services.courses import EnrollmentService

router = APIRouter()


@router.get("", response_model=list[CourseOut])
async def list_courses(
    search: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await EnrollmentService(db).list_courses(search)


@router.get("/my-courses", response_model=list[CourseOut])
async def my_courses(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await EnrollmentService(db).list_enrolled_courses(current_user.id)


@router.get("/peers", response_model=list[PeerOut])
async def peers(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    found = await EnrollmentService(db).list_peers(current_user.id)
    return [PeerOut.model_validate(peer) for peer in found]


@router.post("", response_model=CourseOut, status_code=201)
async def create_course(
    course: CourseCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await EnrollmentService(db).create_course(course.model_dump())


@router.get("/{course_id}", response_model=CourseOut)
async def get_course(
    course_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await EnrollmentService(db).get_course(course_id)


@router.put("/{course_id}", response_model=CourseOut)
async def update_course(
    course_id: int,
    course: CourseUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await EnrollmentService(db).update_course(course_id, course.model_dump(exclude_unset=True))


@router.delete("/{course_id}", response_model=MessageOut)
async def delete_course(
    course_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await EnrollmentService(db).delete_course(course_id)
    return {"message": "Course deleted successfully"}


@router.post("/{course_id}/enroll", response_model=MessageOut)
async def enroll(
    course_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await EnrollmentService(db).enroll(current_user.id, course_id)
    return {"message": "Successfully enrolled in course"}


@router.delete("/{course_id}/unenroll", response_model=MessageOut)
async def unenroll(
    course_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await EnrollmentService(db).unenroll(current_user.id, course_id)
    return {"message": "Successfully unenrolled from course"}


@router.get("/{course_id}/peers", response_model=list[UserOut])
async def course_peers(
    course_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await EnrollmentService(db).list_course_peers(current_user.id, course_id)
