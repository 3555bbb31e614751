"""Job status and challenge-answer endpoints"""

from fastapi import APIRouter, Depends, HTTPException, status

from sandbox_bank.api.dependencies import get_sandbox, require_user
from sandbox_bank.api.v1.schemas import ChallengeAnswersRequest, JobStatusResponse, answers_to_domain, job_status_response
from sandbox_bank.domain.exceptions import AuthenticationError, ResourceNotFoundError
from sandbox_bank.domain.models import Job, User
from sandbox_bank.domain.problems import OverlayMode
from sandbox_bank.sandbox import Sandbox

router = APIRouter()


def _require_job(sandbox: Sandbox, user: User, job_id: str) -> Job:
    try:
        return sandbox.jobs.get_job(job_id, user.id)
    except (ResourceNotFoundError, AuthenticationError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="resource_not_found") from e


@router.get("/jobs/{job_id}", response_model=JobStatusResponse, response_model_exclude_none=True)
def get_job_status(
    job_id: str,
    user: User = Depends(require_user),
    sandbox: Sandbox = Depends(get_sandbox),
):
    """Report the job's stage; problems configured for the stage replace the computed ones"""
    job = _require_job(sandbox, user, job_id)
    return job_status_response(sandbox.jobs.status(job, OverlayMode.REPLACE))


@router.put("/jobs/{job_id}", response_model=JobStatusResponse, response_model_exclude_none=True)
def answer_job(
    job_id: str,
    request_body: ChallengeAnswersRequest,
    user: User = Depends(require_user),
    sandbox: Sandbox = Depends(get_sandbox),
):
    """
    Submit challenge answers and run one progression round.

    Answers sent to a finished job are ignored. Problems configured for the
    resulting stage are appended to the computed ones.
    """
    try:
        job = sandbox.jobs.answer_job(job_id, user.id, answers_to_domain(request_body.challenge_answers))
    except (ResourceNotFoundError, AuthenticationError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="resource_not_found") from e
    return job_status_response(sandbox.jobs.status(job, OverlayMode.APPEND))


@router.delete("/jobs/{job_id}")
def cancel_job(
    job_id: str,
    user: User = Depends(require_user),
    sandbox: Sandbox = Depends(get_sandbox),
):
    _require_job(sandbox, user, job_id)
    raise HTTPException(status_code=status.HTTP_501_NOT_IMPLEMENTED, detail="not_implemented_by_test_server")
