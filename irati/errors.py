"""
Domain errors raised by the repositories.

Each error carries the HTTP status the API answers with; the message is what
the user gets to read.
"""


class IratiError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequestError(IratiError):
    status_code = 400


class MissingScheduleError(InvalidRequestError):
    """The course lacks the weekdays or dates needed to expand its sessions."""


class NotEnrolledError(InvalidRequestError):
    pass


class PermissionDeniedError(IratiError):
    status_code = 403


class NotFoundError(IratiError):
    status_code = 404


class DuplicateError(IratiError):
    """A unique constraint rejected the write. Expected, not exceptional."""

    status_code = 409


class DuplicateEnrollmentError(DuplicateError):
    pass


class DuplicateAssignmentError(DuplicateError):
    pass


class DuplicateRoleError(DuplicateError):
    pass


class SessionsAlreadyExistError(IratiError):
    status_code = 409
