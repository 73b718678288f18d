"""Typed exceptions for signature synchronization.

Run-level errors (configuration, directory, template resolution) abort a
run before any result is produced. Identity-level errors (credential,
write) are caught by the pipeline and recorded in the ``failed`` bucket.
"""


class SignatureSyncError(Exception):
    """Base exception for all signature sync operations."""
    pass


class ConfigurationError(SignatureSyncError):
    """Settings are missing or invalid; the run cannot start."""
    pass


class InvalidRuleError(ConfigurationError):
    """Filter rules cannot be applied (e.g. no domain configured)."""
    pass


class DirectoryUnavailable(SignatureSyncError):
    """The directory provider did not return a user list."""
    pass


class TemplateNotFound(SignatureSyncError):
    """No built-in, local or Drive template matches the identifier."""

    def __init__(self, template_id: str, detail: str = ""):
        self.template_id = template_id
        message = f"Template '{template_id}' not found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class CredentialDenied(SignatureSyncError):
    """A per-identity credential could not be issued. Never retried."""

    def __init__(self, email: str, message: str):
        self.email = email
        self.message = message
        super().__init__(f"Credential denied for {email}: {message}")


class WriteError(SignatureSyncError):
    """Writing a signature failed."""

    def __init__(self, message: str, status_code: int | None = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class TransientWriteError(WriteError):
    """Write failed for a reason worth retrying (network, 429, 5xx)."""
    pass


class PermanentWriteError(WriteError):
    """Write failed for a reason retrying cannot fix (4xx, malformed identity)."""
    pass


class GoogleAPIError(SignatureSyncError):
    """HTTP error from a Google Workspace API.

    Attributes:
        status_code: HTTP status code
        message: Error message from response
        endpoint: API endpoint that failed
    """

    def __init__(self, status_code: int, message: str, endpoint: str):
        self.status_code = status_code
        self.message = message
        self.endpoint = endpoint
        super().__init__(f"[{status_code}] {endpoint}: {message}")
