"""Booked, scheduled and repeated transaction listings"""

from typing import List, Optional, TypeVar

from fastapi import APIRouter, Depends, Query

from sandbox_bank.api.dependencies import require_user
from sandbox_bank.api.v1.schemas import (
    RepeatedTransactionSchema,
    TransactionSchema,
    repeated_transaction_schema,
    transaction_schema,
)
from sandbox_bank.domain.models import User

router = APIRouter()

T = TypeVar("T")


def _filtered(items: List[T], access_id: Optional[int], account_id: Optional[int]) -> List[T]:
    return [
        item
        for item in items
        if (access_id is None or item.access_id == access_id)
        and (account_id is None or item.account_id == account_id)
    ]


@router.get("/transactions", response_model=List[TransactionSchema])
def list_transactions(
    access_id: Optional[int] = Query(None),
    account_id: Optional[int] = Query(None),
    user: User = Depends(require_user),
):
    """Booked transactions, including settled regular transfers"""
    return [transaction_schema(t) for t in _filtered(user.transactions, access_id, account_id)]


@router.get("/scheduled_transactions", response_model=List[TransactionSchema])
def list_scheduled_transactions(
    access_id: Optional[int] = Query(None),
    account_id: Optional[int] = Query(None),
    user: User = Depends(require_user),
):
    return [transaction_schema(t) for t in _filtered(user.scheduled_transactions, access_id, account_id)]


@router.get("/repeated_transactions", response_model=List[RepeatedTransactionSchema])
def list_repeated_transactions(
    access_id: Optional[int] = Query(None),
    account_id: Optional[int] = Query(None),
    user: User = Depends(require_user),
):
    """Standing orders; amended and cancelled ones reflect their settled recurring transfers"""
    return [repeated_transaction_schema(r) for r in _filtered(user.repeated_transactions, access_id, account_id)]
