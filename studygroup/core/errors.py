"""Failure taxonomy shared by the services.

Every failure a service can report is a subclass of ``ServiceError``. The HTTP
layer turns them into ``{"detail": ..., "code": ...}`` bodies using the class'
``status_code`` and ``code``; the Socket.IO layer reports the message back to
the sending client.
"""


class ServiceError(Exception):
    status_code = 400
    code = "ERROR"
    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# --- not found

class NotFoundError(ServiceError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found"


class UserNotFoundError(NotFoundError):
    code = "USER_NOT_FOUND"
    default_message = "User not found"


class CourseNotFoundError(NotFoundError):
    code = "COURSE_NOT_FOUND"
    default_message = "Course not found"


class GroupNotFoundError(NotFoundError):
    code = "GROUP_NOT_FOUND"
    default_message = "Group not found"


class MemberNotFoundError(NotFoundError):
    code = "MEMBER_NOT_FOUND"
    default_message = "Member not found in this group"


# --- duplicates

class AlreadyExistsError(ServiceError):
    status_code = 409
    code = "ALREADY_EXISTS"
    default_message = "Already exists"


class AlreadyEnrolledError(AlreadyExistsError):
    code = "ALREADY_ENROLLED"
    default_message = "User is already enrolled in this course"


# --- authorization / preconditions

class NotAuthorizedError(ServiceError):
    status_code = 403
    code = "NOT_AUTHORIZED"
    default_message = "Not authorized"


class NotAMemberError(ServiceError):
    status_code = 403
    code = "NOT_A_MEMBER"
    default_message = "You are not a member of this group"


class NotEnrolledError(ServiceError):
    status_code = 403
    code = "NOT_ENROLLED"
    default_message = "You are not enrolled in this course"


# --- invalid state

class InvalidStateError(ServiceError):
    status_code = 409
    code = "INVALID_STATE"
    default_message = "Operation not allowed in the current state"


class AlreadyMemberError(InvalidStateError):
    code = "ALREADY_MEMBER"
    default_message = "You are already a member of this group"


class RequestAlreadyPendingError(InvalidStateError):
    code = "REQUEST_ALREADY_PENDING"
    default_message = "You already have a pending join request for this group"


class GroupFullError(InvalidStateError):
    code = "GROUP_FULL"
    default_message = "Group is full"


class CannotRemoveAdminError(InvalidStateError):
    code = "CANNOT_REMOVE_ADMIN"
    default_message = "Cannot remove other admins from the group"


class CannotRemoveSelfError(InvalidStateError):
    code = "CANNOT_REMOVE_SELF"
    default_message = "Cannot remove yourself. Use leave group instead."


class HasEnrollmentsError(InvalidStateError):
    code = "HAS_ENROLLMENTS"
    default_message = "Cannot delete course with enrolled students"


class HasGroupsError(InvalidStateError):
    code = "HAS_GROUPS"
    default_message = "Cannot delete course with study groups"


# --- input

class ValidationError(ServiceError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid input"


# --- collaborators

class TokenGenerationFailedError(ServiceError):
    status_code = 503
    code = "TOKEN_GENERATION_FAILED"
    default_message = "Failed to generate unique token"


class EmailDeliveryError(ServiceError):
    status_code = 502
    code = "EMAIL_DELIVERY_FAILED"
    default_message = "Failed to send email"


class MediaStoreError(ServiceError):
    status_code = 502
    code = "MEDIA_STORE_FAILED"
    default_message = "Failed to upload file"
