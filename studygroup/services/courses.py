from dataclasses import dataclass, field
from typing import Optional, Sequence

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from studygroup.core.errors import (
    AlreadyEnrolledError,
    AlreadyExistsError,
    CourseNotFoundError,
    HasEnrollmentsError,
    HasGroupsError,
    NotEnrolledError,
    UserNotFoundError,
)
from studygroup.models import Course, User, UserCourse
from studygroup.repositories import CourseRepository, GroupRepository, UserCourseRepository, UserRepository

logger = structlog.get_logger(__name__)


DEFAULT_COURSES = [
    ("CS 101", "Introduction to Computer Science",
     "Fundamental concepts of computer science and programming", 3, "Computer Science"),
    ("MATH 201", "Calculus I",
     "Differential and integral calculus of one variable", 4, "Mathematics"),
    ("PHYS 101", "General Physics I",
     "Mechanics, heat, and waves", 4, "Physics"),
    ("CHEM 101", "General Chemistry",
     "Basic principles of chemistry", 3, "Chemistry"),
    ("ENG 102", "English Composition",
     "College-level writing and composition", 3, "English"),
    ("CS 201", "Data Structures",
     "Fundamental data structures and algorithms", 3, "Computer Science"),
    ("MATH 202", "Calculus II",
     "Advanced integration techniques and series", 4, "Mathematics"),
    ("PHYS 102", "General Physics II",
     "Electricity, magnetism, and optics", 4, "Physics"),
]


@dataclass
class Peer:
    user: User
    common_courses: list[Course] = field(default_factory=list)


class EnrollmentService:
    """Course catalog plus the user <-> course enrollment facts.

    ``is_enrolled`` is the gate the group engine consults before letting a user
    create or join a group of a course.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.users = UserRepository(db)
        self.courses = CourseRepository(db)
        self.enrollments = UserCourseRepository(db)
        self.groups = GroupRepository(db)

    # --- catalog

    async def list_courses(self, search: Optional[str] = None) -> Sequence[Course]:
        term = search.strip() if search else None
        return await self.courses.list(term or None)

    async def get_course(self, course_id: int) -> Course:
        course = await self.courses.get(course_id)
        if not course:
            raise CourseNotFoundError()
        return course

    async def create_course(self, data: dict) -> Course:
        if await self.courses.get_by_code(data["course_code"]):
            raise AlreadyExistsError(f"Course with code {data['course_code']} already exists")

        try:
            course = await self.courses.add(Course(**data))
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise AlreadyExistsError(f"Course with code {data['course_code']} already exists")

        logger.info("course_created", course_id=course.id, course_code=course.course_code)
        return course

    async def update_course(self, course_id: int, data: dict) -> Course:
        course = await self.get_course(course_id)

        new_code = data.get("course_code")
        if new_code and new_code != course.course_code:
            existing = await self.courses.get_by_code(new_code)
            if existing and existing.id != course_id:
                raise AlreadyExistsError(f"Course code {new_code} already exists")

        for key, value in data.items():
            if value is not None:
                setattr(course, key, value)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise AlreadyExistsError(f"Course code {new_code} already exists")

        logger.info("course_updated", course_id=course_id)
        return course

    async def delete_course(self, course_id: int) -> None:
        course = await self.get_course(course_id)
        if await self.enrollments.has_enrollments(course_id):
            raise HasEnrollmentsError()
        if await self.groups.exists_for_course(course_id):
            raise HasGroupsError()

        await self.courses.delete(course)
        await self.db.commit()
        logger.info("course_deleted", course_id=course_id)

    async def seed_default_courses(self) -> int:
        if await self.courses.count():
            return 0
        for code, name, description, credits, department in DEFAULT_COURSES:
            self.db.add(Course(
                course_code=code,
                course_name=name,
                description=description,
                credits=credits,
                department=department,
            ))
        await self.db.commit()
        logger.info("sample_courses_initialized", count=len(DEFAULT_COURSES))
        return len(DEFAULT_COURSES)

    # --- enrollment

    async def _require_user(self, user_id: int) -> User:
        user = await self.users.get(user_id)
        if not user:
            raise UserNotFoundError()
        return user

    async def enroll(self, user_id: int, course_id: int) -> UserCourse:
        await self._require_user(user_id)
        await self.get_course(course_id)

        if await self.enrollments.exists(user_id, course_id):
            raise AlreadyEnrolledError()

        enrollment = await self.enrollments.add(UserCourse(user_id=user_id, course_id=course_id))
        await self.db.commit()
        logger.info("course_enrolled", user_id=user_id, course_id=course_id)
        return enrollment

    async def unenroll(self, user_id: int, course_id: int) -> None:
        await self._require_user(user_id)
        await self.get_course(course_id)

        enrollment = await self.enrollments.get(user_id, course_id)
        if not enrollment:
            raise NotEnrolledError("User is not enrolled in this course")

        await self.enrollments.delete(enrollment)
        await self.db.commit()
        logger.info("course_unenrolled", user_id=user_id, course_id=course_id)

    async def is_enrolled(self, user_id: int, course_id: int) -> bool:
        return await self.enrollments.exists(user_id, course_id)

    async def list_enrolled_courses(self, user_id: int) -> Sequence[Course]:
        await self._require_user(user_id)
        return await self.enrollments.courses_for_user(user_id)

    async def enrolled_course_ids(self, user_id: int) -> list[int]:
        return await self.enrollments.course_ids_for_user(user_id)

    async def list_peers(self, user_id: int) -> list[Peer]:
        """Users sharing at least one course with ``user_id``, with the shared courses."""
        course_ids = await self.enrolled_course_ids(user_id)
        if not course_ids:
            return []

        peers: dict[int, Peer] = {}
        for peer, course in await self.enrollments.peer_enrollments(course_ids, user_id):
            peers.setdefault(peer.id, Peer(user=peer)).common_courses.append(course)
        return list(peers.values())

    async def list_course_peers(self, user_id: int, course_id: int) -> Sequence[User]:
        await self._require_user(user_id)
        await self.get_course(course_id)
        return await self.enrollments.peers_in_course(course_id, user_id)
