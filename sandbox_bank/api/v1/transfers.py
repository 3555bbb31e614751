"""Transfer creation and authorization endpoints"""

from fastapi import APIRouter, Depends, HTTPException, status

from sandbox_bank.api.dependencies import get_sandbox, require_user
from sandbox_bank.api.v1.schemas import (
    CreateTransferRequest,
    ProcessTransferRequest,
    TransferResponse,
    answers_to_domain,
    transfer_response,
)
from sandbox_bank.domain.exceptions import AuthenticationError, ResourceNotFoundError
from sandbox_bank.domain.models import User
from sandbox_bank.sandbox import Sandbox

router = APIRouter()


@router.post(
    "/transfers",
    response_model=TransferResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
def create_transfer(
    request_body: CreateTransferRequest,
    user: User = Depends(require_user),
    sandbox: Sandbox = Depends(get_sandbox),
):
    """
    Open a transfer order from one of the user's accounts.

    The first authorization round runs immediately, so the response already
    names the next intent the caller must satisfy.
    """
    try:
        order = sandbox.transfers.create_transfer_from_account(user.id, request_body.to_domain())
    except ResourceNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="resource_not_found") from e
    return transfer_response(order.transfer)


@router.post("/transfers/{transfer_id}", response_model=TransferResponse, response_model_exclude_none=True)
def process_transfer(
    transfer_id: str,
    request_body: ProcessTransferRequest,
    user: User = Depends(require_user),
    sandbox: Sandbox = Depends(get_sandbox),
):
    """
    Submit the next authorization step.

    Version, intent and state mismatches are reported inline in the
    transfer's errors with a 200 response.
    """
    try:
        transfer = sandbox.transfers.process_transfer(
            transfer_id,
            request_body.type,
            user.id,
            request_body.intent,
            request_body.version,
            confirm=request_body.confirm,
            answers=answers_to_domain(request_body.challenge_answers),
        )
    except (ResourceNotFoundError, AuthenticationError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="resource_not_found") from e
    return transfer_response(transfer)


@router.put("/transfers/{transfer_id}")
def update_transfer(transfer_id: str, user: User = Depends(require_user)):
    raise HTTPException(status_code=status.HTTP_501_NOT_IMPLEMENTED, detail="not_implemented_by_test_server")


@router.delete("/transfers/{transfer_id}")
def cancel_transfer(transfer_id: str, user: User = Depends(require_user)):
    raise HTTPException(status_code=status.HTTP_501_NOT_IMPLEMENTED, detail="not_implemented_by_test_server")
