"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Header, HTTPException, Request, status

from sandbox_bank.domain.exceptions import AuthenticationError
from sandbox_bank.domain.models import User
from sandbox_bank.sandbox import Sandbox


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_sandbox(request: Request) -> Sandbox:
    """Provide the sandbox instance the app was created with"""
    return request.app.state.sandbox


def require_user(
    x_application_id: str | None = Header(None),
    x_token: str | None = Header(None),
    sandbox: Sandbox = Depends(get_sandbox),
) -> User:
    """
    Resolve the calling user from the X-Application-Id and X-Token headers.

    Raises:
        HTTPException: 401 with authentication_app_id_invalid or authentication_failed
    """
    try:
        return sandbox.identity.resolve(x_application_id, x_token)
    except AuthenticationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.code) from e
