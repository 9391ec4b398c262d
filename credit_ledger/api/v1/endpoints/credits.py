from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status

from credit_ledger.api.deps import get_journal, get_store
from credit_ledger.core.errors import AllocationCancelledError, RemoteError, ValidationError
from credit_ledger.models.allocation import AllocationIntent
from credit_ledger.models.credit import CreditStatus
from credit_ledger.models.customer_key import CustomerKey
from credit_ledger.models.group import CustomerLedgerView
from credit_ledger.schemas.credit import CreditGroupsResponse, GroupPaymentResponse, PaymentCreate
from credit_ledger.services.credit_desk import CreditDesk

router = APIRouter()


def _parse_key(key: str) -> CustomerKey:
    try:
        return CustomerKey.parse(key)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid customer key: {key}"
        )


def _remote_failure(exc: RemoteError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.detail)


@router.get("/groups", response_model=CreditGroupsResponse)
async def list_customer_groups(
    shop_id: str,
    credit_status: CreditStatus = Query(CreditStatus.OPEN, alias="status"),
    q: Optional[str] = None,
    store = Depends(get_store),
):
    """Credit sales of a shop grouped by customer, biggest open balance first"""
    desk = CreditDesk(store, shop_id, status=credit_status)
    try:
        await desk.load_credits()
    except RemoteError as exc:
        raise _remote_failure(exc)
    return CreditGroupsResponse(summary=desk.summary, groups=desk.search(q))


@router.get("/groups/{key:path}", response_model=CustomerLedgerView)
async def get_customer_ledger(
    key: str,
    shop_id: str,
    credit_status: CreditStatus = Query(CreditStatus.OPEN, alias="status"),
    store = Depends(get_store),
):
    """Full payment history of one customer group"""
    customer_key = _parse_key(key)
    desk = CreditDesk(store, shop_id, status=credit_status)
    try:
        await desk.load_credits()
        group = desk.find_group(customer_key)
        if group is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Customer group not found"
            )
        return await desk.select_group(group)
    except RemoteError as exc:
        raise _remote_failure(exc)


@router.post("/groups/{key:path}/payments", response_model=GroupPaymentResponse)
async def pay_customer_group(
    key: str,
    payload: PaymentCreate,
    shop_id: str,
    store = Depends(get_store),
    journal = Depends(get_journal),
):
    """
    Apply one payment to the group's open credits, oldest first.

    Not atomic: when a write fails midway, earlier sales stay paid. The
    response ledger is always reloaded from the Ledger Store; if that reload
    fails after the payment went through, `ledger` is null and `warning` says why.
    """
    customer_key = _parse_key(key)
    desk = CreditDesk(store, shop_id, journal=journal, status=CreditStatus.OPEN)
    try:
        await desk.load_credits()
        group = desk.find_group(customer_key)
        if group is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Customer has no open credits"
            )
        await desk.select_group(group)
        allocation = await desk.submit_payment(
            payload.amount, payload.payment_method, payload.note
        )
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except AllocationCancelledError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except RemoteError as exc:
        raise _remote_failure(exc)

    return GroupPaymentResponse(
        allocation=allocation, ledger=desk.selected, warning=desk.reload_error
    )


@router.get("/allocations/unfinished", response_model=List[AllocationIntent])
async def list_unfinished_allocations(
    limit: int = Query(100, ge=1, le=1000),
    journal = Depends(get_journal),
):
    """Journalled payment writes that were never confirmed applied"""
    if journal is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Allocation journal is disabled"
        )
    return await journal.list_unfinished(limit)


@router.get("/allocations/{allocation_id}", response_model=List[AllocationIntent])
async def get_allocation(
    allocation_id: str,
    journal = Depends(get_journal),
):
    """Every journalled write of one allocation, in write order"""
    if journal is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Allocation journal is disabled"
        )
    intents = await journal.get_allocation(allocation_id)
    if not intents:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Allocation not found"
        )
    return intents
