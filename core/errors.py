"""
core/errors.py -- Domain error taxonomy for credvault.

Services and the policy engine raise these; api/main.py maps every VaultError
to an HTTP response with the class's status code and a body of the form
{"error": "<message>"}. Messages are short and safe to show to a client --
internal detail stays in the server log.
"""

from typing import Optional


class VaultError(Exception):
    """Base exception for credvault domain failures."""

    status_code: int = 500
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(VaultError):
    """Malformed or missing input, including length and enum violations."""

    status_code = 400
    default_message = "Invalid request."


class InvalidCredentials(VaultError):
    """Login failed. Never says whether the username or the password was wrong."""

    status_code = 400
    default_message = "Invalid credentials"


class Unauthorized(VaultError):
    """Missing, malformed, expired or revoked access token."""

    status_code = 401
    default_message = "Authentication required."


class Forbidden(VaultError):
    """The authorization policy denied the request."""

    status_code = 403
    default_message = "Access denied"


class NotFound(VaultError):
    status_code = 404
    default_message = "Not found."


class Conflict(VaultError):
    """A unique key (username, OU name, division name within an OU) already exists.

    Reported as 400 so registration clients see one status for every rejected
    form submission, duplicate username included.
    """

    status_code = 400
    default_message = "Already exists."


class Internal(VaultError):
    status_code = 500
