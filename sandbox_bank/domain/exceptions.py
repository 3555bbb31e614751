"""Domain-specific exceptions

Expected business outcomes (wrong PIN, stale version, blocked account) are
never raised; they travel as Problem values on the job or transfer.
"""

from typing import List


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class UnknownUserError(DomainException):
    """Referenced user does not exist"""

    pass


class AuthenticationError(DomainException):
    """Application ID or session token could not be resolved"""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


class ResourceNotFoundError(DomainException):
    """Job, transfer, access or repeated transaction is missing or not owned by the caller"""

    pass


class SnapshotError(DomainException):
    """Snapshot stream is malformed or incomplete"""

    pass


class SandboxAPIError(DomainException):
    """Sandbox HTTP API answered with an error or could not be reached"""

    def __init__(self, status_code: int, codes: List[str], request_id: str | None = None):
        super().__init__(f"sandbox API error {status_code}: {', '.join(codes) or 'unknown'}")
        self.status_code = status_code
        self.codes = codes
        self.request_id = request_id
