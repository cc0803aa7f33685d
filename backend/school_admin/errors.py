class SchoolAdminError(Exception):
    """Base class for every error surfaced to the user as a single notification."""

    title = "Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthError(SchoolAdminError):
    title = "Login Failed"


class PolicyError(SchoolAdminError):
    title = "Access Denied"


class NotFoundError(SchoolAdminError):
    title = "Not Found"


class InvalidInputError(SchoolAdminError):
    title = "Error"


class CollaboratorError(SchoolAdminError):
    """A backend collaborator failed; the original exception is chained as __cause__."""

    title = "Error"
