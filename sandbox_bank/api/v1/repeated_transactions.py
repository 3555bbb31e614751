"""Recurring-transfer orders that amend or cancel a repeated transaction"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status

from sandbox_bank.api.dependencies import get_sandbox, require_user
from sandbox_bank.api.v1.schemas import RepeatedTransactionOrderRequest, TransferResponse, transfer_response
from sandbox_bank.domain.exceptions import ResourceNotFoundError
from sandbox_bank.domain.models import OrderOp, User
from sandbox_bank.sandbox import Sandbox

router = APIRouter()


def _open_order(
    sandbox: Sandbox,
    user: User,
    rtx_id: int,
    request_body: Optional[RepeatedTransactionOrderRequest],
    operation: OrderOp,
) -> TransferResponse:
    params = (request_body or RepeatedTransactionOrderRequest()).to_domain()
    try:
        order = sandbox.transfers.create_repeated_transaction_order(user.id, rtx_id, params, operation)
    except ResourceNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="resource_not_found") from e
    return transfer_response(order.transfer)


@router.put(
    "/repeated_transactions/{rtx_id}",
    response_model=TransferResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
def amend_repeated_transaction(
    rtx_id: int,
    request_body: Optional[RepeatedTransactionOrderRequest] = Body(None),
    user: User = Depends(require_user),
    sandbox: Sandbox = Depends(get_sandbox),
):
    """Open a recurring transfer that rewrites the repeated transaction once authorized"""
    return _open_order(sandbox, user, rtx_id, request_body, OrderOp.UPDATE)


@router.delete(
    "/repeated_transactions/{rtx_id}",
    response_model=TransferResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
def cancel_repeated_transaction(
    rtx_id: int,
    request_body: Optional[RepeatedTransactionOrderRequest] = Body(None),
    user: User = Depends(require_user),
    sandbox: Sandbox = Depends(get_sandbox),
):
    """Open a recurring transfer that removes the repeated transaction once authorized"""
    return _open_order(sandbox, user, rtx_id, request_body, OrderOp.DELETE)
