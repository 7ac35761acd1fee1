"""
auth/errors.py -- Typed failures raised by the identity and token layer.

Every failure carries a stable machine code plus the HTTP status and message
the API layer should show. The API maps AuthError to an error envelope in one
exception handler; route code never builds these responses by hand.

Local-login denials keep their detailed reason (NOT_FOUND, INVALID_CREDENTIALS,
DISABLED) on the exception for logging, but expose one generic code and
message so responses never reveal whether an email is registered.

Layer rule: stdlib only.
"""

from __future__ import annotations

from enum import Enum


class AuthError(Exception):
    """Base class for identity/token failures that map to an HTTP response."""

    code: str = "AUTH_ERROR"
    status_code: int = 400
    public_message: str = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_message)


class DuplicateEmailError(AuthError):
    code = "DUPLICATE_EMAIL"
    status_code = 409
    public_message = "An account with that email already exists."

    def __init__(self, email: str) -> None:
        super().__init__(f"Email already in use: {email}")
        self.email = email


class DenialReason(str, Enum):
    """Internal-only reason behind a local login denial."""

    NOT_FOUND = "NOT_FOUND"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    DISABLED = "DISABLED"


class AuthenticationDenied(AuthError):
    """Local email/password login failed.

    `reason` is for logs and tests only. `code` and `public_message` are the
    same for every reason.
    """

    code = "INVALID_CREDENTIALS"
    status_code = 401
    public_message = "Invalid email or password."

    def __init__(self, reason: DenialReason, email: str) -> None:
        super().__init__(f"Local login denied for {email}: {reason.value}")
        self.reason = reason
        self.email = email


class InvalidAssertionError(AuthError):
    """The OAuth identity assertion is missing its subject or email."""

    code = "INVALID_ASSERTION"
    status_code = 401
    public_message = "Authentication with the identity provider failed."


class IdentityConflictError(AuthError):
    """An OAuth upsert kept colliding with a concurrent writer."""

    code = "IDENTITY_CONFLICT"
    status_code = 409
    public_message = "The account could not be linked. Try again."


class MalformedTokenError(AuthError):
    """A bearer token could not be parsed. Never shown to clients."""

    code = "MALFORMED_TOKEN"
    status_code = 401
    public_message = "Authentication required."


class KeyMisconfiguredError(ValueError):
    """The configured signing secret yields fewer than 32 key bytes. Fatal at startup."""

    code = "KEY_MISCONFIGURED"
