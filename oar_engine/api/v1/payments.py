"""POST /v1/bills/{bill_id}/payments and POST /v1/transactions/{id}/reversal"""

import logging
from datetime import timezone

from fastapi import APIRouter, Depends, HTTPException, Request

from oar_engine.api.dependencies import get_bill_engine, get_request_id
from oar_engine.api.v1.schemas import PaymentRequest, PaymentResponse, ReversalRequest
from oar_engine.domain.exceptions import (
    BillNotFoundError,
    ConflictError,
    StoreError,
    StoreUnavailable,
    TransactionNotFoundError,
    ValidationError,
)
from oar_engine.services.engine import BillEngine

router = APIRouter()


@router.post("/bills/{bill_id}/payments", response_model=PaymentResponse, status_code=201)
async def record_payment(
    bill_id: str,
    request_body: PaymentRequest,
    request: Request,
    engine: BillEngine = Depends(get_bill_engine),
):
    """
    Log a payment against a bill.

    Payments dated before the bill's current cycle are stored as historical
    and leave the due date alone; others advance the bill to its next cycle.
    """
    request_id = get_request_id(request)
    paid_at = request_body.paid_at
    if paid_at is not None and paid_at.tzinfo is None:
        paid_at = paid_at.replace(tzinfo=timezone.utc)

    try:
        receipt = engine.record_payment(
            bill_id,
            request_body.amount_cents,
            paid_at=paid_at,
            notes=request_body.notes,
            update_due_date=request_body.update_due_date,
        )
    except BillNotFoundError:
        raise HTTPException(status_code=404, detail="Bill not found")
    except ValidationError as e:
        logging.warning(f"Invalid payment: {e}", extra={"request_id": request_id, "bill_id": bill_id})
        raise HTTPException(status_code=422, detail=str(e))
    except ConflictError as e:
        logging.warning(f"Payment conflict: {e}", extra={"request_id": request_id, "bill_id": bill_id})
        raise HTTPException(status_code=409, detail="Bill was modified concurrently, retry")
    except StoreUnavailable as e:
        logging.error(f"Store unavailable: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Store unavailable")
    except StoreError as e:
        logging.warning(f"Payment write rejected: {e}", extra={"request_id": request_id, "bill_id": bill_id})
        raise HTTPException(status_code=409, detail="Payment conflicts with stored data, retry")

    return PaymentResponse(transaction_id=receipt.transaction_id, historical=receipt.historical)


@router.post("/transactions/{transaction_id}/reversal", response_model=PaymentResponse, status_code=201)
async def reverse_payment(
    transaction_id: str,
    request_body: ReversalRequest,
    request: Request,
    engine: BillEngine = Depends(get_bill_engine),
):
    """Offset a payment with a negative transaction"""
    request_id = get_request_id(request)
    try:
        receipt = engine.reverse_payment(transaction_id, notes=request_body.notes)
    except (TransactionNotFoundError, BillNotFoundError):
        raise HTTPException(status_code=404, detail="Transaction not found")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ConflictError:
        raise HTTPException(status_code=409, detail="Bill was modified concurrently, retry")
    except StoreUnavailable as e:
        logging.error(f"Store unavailable: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Store unavailable")
    except StoreError as e:
        # Unique reverses_id: a concurrent reversal of the same payment won
        logging.warning(f"Reversal write rejected: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=409, detail="Transaction was reversed concurrently")

    return PaymentResponse(transaction_id=receipt.transaction_id, historical=receipt.historical)
