"""Exception taxonomy shared by the bot, the HTTP API, and the core.

WHY: Each failure class is surfaced differently: a usage message in the
channel, a 401 on an HTTP callback, a generic "connect first" hint, a
message naming the failed Jenkins action, or a refusal to start. Typed
exceptions let each boundary pick the right treatment with one except
clause.

HOW: A small hierarchy rooted at JenkinsBotError. RemoteError carries the
name of the Jenkins operation that failed and the HTTP status when known.

RULES:
- Messages never contain tokens or key material
- RemoteError.operation is a short verb phrase ("trigger build", "get job")
- ParameterValidationError is a UserInputError (bad input, nothing sent)
"""

from __future__ import annotations


class JenkinsBotError(Exception):
    """Base class for all errors raised by this package."""


class UserInputError(JenkinsBotError):
    """Malformed command arguments or an ambiguous job-name parse."""


class ParameterValidationError(UserInputError):
    """Build parameters do not match the job's declared parameter schema."""


class AuthError(JenkinsBotError):
    """Missing or invalid chat-platform user identity on an HTTP callback."""


class CredentialError(JenkinsBotError):
    """Stored Jenkins credentials are missing or unreadable."""


class CredentialNotFoundError(CredentialError):
    """No credentials are stored for the user."""


class DecryptError(CredentialError):
    """Ciphertext could not be decrypted with the configured key.

    WHY: A wrong encryption key or corrupted record must surface as an
    explicit failure, not as garbage plaintext handed to Jenkins.
    """


class ConfigError(JenkinsBotError):
    """The plugin configuration is invalid; activation must fail."""


class RemoteError(JenkinsBotError):
    """A Jenkins request failed.

    WHY: Callers need to know which remote operation failed so the user
    sees "Error triggering the build" rather than a bare HTTP error.

    RULES:
    - operation names the failed action, message is the underlying cause
    - status_code is None when the failure was not an HTTP response
    """

    def __init__(
        self,
        operation: str,
        message: str,
        status_code: int | None = None,
    ) -> None:
        self.operation = operation
        self.message = message
        self.status_code = status_code
        super().__init__(f"Error during '{operation}': {message}")
