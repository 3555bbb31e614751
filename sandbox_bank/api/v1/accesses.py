"""Access linking, refresh and listing endpoints"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from sandbox_bank.api.dependencies import get_sandbox, require_user
from sandbox_bank.api.v1.schemas import (
    AccessSchema,
    AccountSchema,
    AddAccessRequest,
    ChallengeAnswersRequest,
    DeletedAccessResponse,
    JobResponse,
    access_schema,
    account_schema,
    answers_to_domain,
)
from sandbox_bank.domain.models import Access, JobAction, User
from sandbox_bank.sandbox import Sandbox


router = APIRouter()


def _require_access(sandbox: Sandbox, user: User, access_id: int) -> Access:
    access = sandbox.identity.find_access(user.id, access_id)
    if access is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="resource_not_found")
    return access


@router.post("/accesses", response_model=JobResponse, status_code=status.HTTP_202_ACCEPTED)
def add_access(
    request_body: AddAccessRequest,
    user: User = Depends(require_user),
    sandbox: Sandbox = Depends(get_sandbox),
):
    """Start an access-linking job; poll the returned URI for progress"""
    job = sandbox.jobs.create_job(
        user.id,
        request_body.provider_id,
        answers_to_domain(request_body.challenge_answers),
        JobAction.CREATE,
    )
    return JobResponse(uri=job.uri)


@router.get("/accesses", response_model=List[AccessSchema])
def list_accesses(user: User = Depends(require_user)):
    return [access_schema(a) for a in user.accesses]


@router.get("/accesses/{access_id}", response_model=AccessSchema)
def get_access(
    access_id: int,
    user: User = Depends(require_user),
    sandbox: Sandbox = Depends(get_sandbox),
):
    return access_schema(_require_access(sandbox, user, access_id))


@router.delete("/accesses/{access_id}", response_model=DeletedAccessResponse)
def delete_access(
    access_id: int,
    user: User = Depends(require_user),
    sandbox: Sandbox = Depends(get_sandbox),
):
    """Remove an access together with its accounts and transactions"""
    if not sandbox.identity.delete_access(user.id, access_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="resource_not_found")
    return DeletedAccessResponse(deleted_access_id=access_id)


@router.post("/accesses/{access_id}", response_model=AccessSchema)
def store_access_answers(
    access_id: int,
    request_body: ChallengeAnswersRequest,
    user: User = Depends(require_user),
    sandbox: Sandbox = Depends(get_sandbox),
):
    """Remember challenge answers (store=true only) for the access's provider"""
    access = _require_access(sandbox, user, access_id)
    sandbox.identity.update_stored_answers(
        user.id,
        access.provider_id,
        answers_to_domain(request_body.challenge_answers),
    )
    return access_schema(access)


@router.post("/accesses/{access_id}/refresh", response_model=JobResponse, status_code=status.HTTP_202_ACCEPTED)
def refresh_access(
    access_id: int,
    user: User = Depends(require_user),
    sandbox: Sandbox = Depends(get_sandbox),
):
    """Start a refresh job pre-seeded with the user's remembered answers"""
    access = _require_access(sandbox, user, access_id)
    job = sandbox.jobs.create_job(user.id, access.provider_id, [], JobAction.REFRESH)
    return JobResponse(uri=job.uri)


@router.get("/accounts", response_model=List[AccountSchema])
def list_accounts(user: User = Depends(require_user)):
    return [account_schema(account) for access in user.accesses for account in access.accounts]
