"""Domain errors raised by the services and rendered by the API layer.

Every error carries a stable ``code`` (returned to clients as ``error``)
and the HTTP status it maps to.  Routes never catch these; the exception
handlers registered in ``main.py`` turn them into JSON responses.
"""


class DomainError(Exception):
    code = "DomainError"
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.message}


class Unauthorized(DomainError):
    code = "Unauthorized"
    status_code = 401

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class Forbidden(DomainError):
    code = "Forbidden"
    status_code = 403

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class NotFound(DomainError):
    code = "NotFound"
    status_code = 404

    def __init__(self, entity: str, key=None):
        msg = f"{entity} not found"
        if key is not None:
            msg += f" (id={key})"
        super().__init__(msg)


class ValidationError(DomainError):
    code = "ValidationError"


class ConsentRequired(DomainError):
    code = "ConsentRequired"

    def __init__(self):
        super().__init__("Consent is required to register")


class DeadlinePassed(DomainError):
    code = "DeadlinePassed"


class LateWindowClosed(DomainError):
    code = "LateWindowClosed"

    def __init__(self):
        super().__init__("Late submission window has closed")


class InvalidTransition(DomainError):
    code = "InvalidTransition"


class NotEditable(DomainError):
    code = "NotEditable"


class TeamFull(DomainError):
    code = "TeamFull"

    def __init__(self, max_size: int):
        super().__init__(f"Team has reached maximum size ({max_size})")


class TeamLocked(DomainError):
    code = "TeamLocked"

    def __init__(self):
        super().__init__("Team is locked")


class NotRegistered(DomainError):
    code = "NotRegistered"
    status_code = 403

    def __init__(self, message: str = "Not registered for this hackathon"):
        super().__init__(message)


class NotAssigned(DomainError):
    code = "NotAssigned"
    status_code = 403

    def __init__(self):
        super().__init__("Not assigned as judge for this hackathon")


class Conflict(DomainError):
    """A concurrent or repeated write hit a uniqueness invariant."""
    code = "Conflict"
    status_code = 409


class DuplicateRegistration(Conflict):
    code = "DuplicateRegistration"
    status_code = 400

    def __init__(self):
        super().__init__("Already registered for this hackathon")


class DuplicateSubmission(Conflict):
    code = "DuplicateSubmission"
    status_code = 400

    def __init__(self):
        super().__init__("A submission already exists for this registration")


class AlreadyRegistered(Conflict):
    code = "AlreadyRegistered"
    status_code = 400

    def __init__(self, message: str = "User already has a registration for this hackathon"):
        super().__init__(message)


class AlreadyInvited(Conflict):
    code = "AlreadyInvited"
    status_code = 400

    def __init__(self, email: str):
        super().__init__(f"'{email}' has already been invited to this team")


class AlreadyMember(Conflict):
    code = "AlreadyMember"
    status_code = 400

    def __init__(self, message: str = "User is already a team member"):
        super().__init__(message)


class InternalError(DomainError):
    code = "InternalError"
    status_code = 500

    def __init__(self, message: str = "An unexpected error occurred. Please try again later."):
        super().__init__(message)
