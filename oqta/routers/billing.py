from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from oqta.core.database import get_db, utcnow
from oqta.deps import require_admin
from oqta.models.customer import Customer
from oqta.models.invoice import INVOICE_STATUSES, Invoice
from oqta.schemas.common import CamelModel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/billing", tags=["billing"], dependencies=[Depends(require_admin)])

INVOICE_FIELDS = ("customer_id", "invoice_number", "amount", "currency", "description", "due_date", "status")
NON_NULLABLE_FIELDS = {
    "invoice_number": "invoiceNumber",
    "amount": "amount",
    "currency": "currency",
    "status": "status",
}


class InvoicePayload(CamelModel):
    customer_id: Optional[str] = None
    invoice_number: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    status: Optional[str] = None


def _iso(value):
    return value.isoformat() if value else None


def serialize_invoice(invoice: Invoice, *, include_customer: bool = False) -> Dict[str, Any]:
    body = {
        "id": invoice.id,
        "customerId": invoice.customer_id,
        "invoiceNumber": invoice.invoice_number,
        "amount": float(invoice.amount) if invoice.amount is not None else 0.0,
        "currency": invoice.currency,
        "status": invoice.status,
        "description": invoice.description,
        "dueDate": _iso(invoice.due_date),
        "sentAt": _iso(invoice.sent_at),
        "createdAt": _iso(invoice.created_at),
        "updatedAt": _iso(invoice.updated_at),
    }
    if include_customer:
        customer = invoice.customer
        body["customer"] = (
            {"id": customer.id, "name": customer.name, "email": customer.email, "company": customer.company}
            if customer
            else None
        )
    return body


def _get_invoice_or_404(db: Session, invoice_id: str) -> Invoice:
    invoice = db.query(Invoice).filter(Invoice.id == invoice_id).first()
    if invoice is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")
    return invoice


def _validate_status(value: Optional[str]) -> None:
    if value is not None and value not in INVOICE_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status. Allowed: {', '.join(INVOICE_STATUSES)}",
        )


def _validate_customer(db: Session, customer_id: Optional[str]) -> None:
    if customer_id and not db.query(Customer.id).filter(Customer.id == customer_id).first():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")


def _duplicate_number_error() -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invoice number already exists")


def _ensure_unique_number(db: Session, invoice_number: str, *, exclude_id: Optional[str] = None) -> None:
    query = db.query(Invoice.id).filter(Invoice.invoice_number == invoice_number)
    if exclude_id:
        query = query.filter(Invoice.id != exclude_id)
    if query.first():
        raise _duplicate_number_error()


def _commit_or_conflict(db: Session) -> None:
    """Commit; a concurrent insert of the same invoice number becomes a 400."""
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if "invoice_number" in str(exc.orig).lower():
            raise _duplicate_number_error()
        raise


@router.get("")
def list_invoices(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    customer_id: Optional[str] = Query(default=None, alias="customerId"),
    db: Session = Depends(get_db),
):
    query = db.query(Invoice)
    if status_filter:
        query = query.filter(Invoice.status == status_filter)
    if customer_id:
        query = query.filter(Invoice.customer_id == customer_id)

    total = query.count()
    invoices = query.order_by(Invoice.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "invoices": [serialize_invoice(invoice, include_customer=True) for invoice in invoices],
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": -(-total // limit),
    }


@router.get("/{invoice_id}")
def get_invoice(invoice_id: str, db: Session = Depends(get_db)):
    return serialize_invoice(_get_invoice_or_404(db, invoice_id), include_customer=True)


@router.post("")
def create_invoice(payload: InvoicePayload, db: Session = Depends(get_db)):
    if not (payload.invoice_number or "").strip() or payload.amount is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invoice number and amount are required")
    _validate_customer(db, payload.customer_id)
    _ensure_unique_number(db, payload.invoice_number.strip())

    invoice = Invoice(
        customer_id=payload.customer_id or None,
        invoice_number=payload.invoice_number.strip(),
        amount=payload.amount,
        currency=(payload.currency or "AED").upper(),
        description=payload.description,
        due_date=payload.due_date,
        status="draft",
    )
    db.add(invoice)
    _commit_or_conflict(db)
    db.refresh(invoice)
    logger.info("invoice created id=%s number=%s", invoice.id, invoice.invoice_number)
    return serialize_invoice(invoice, include_customer=True)


@router.put("/{invoice_id}")
def update_invoice(invoice_id: str, payload: InvoicePayload, db: Session = Depends(get_db)):
    invoice = _get_invoice_or_404(db, invoice_id)
    changes = payload.model_dump(include=set(INVOICE_FIELDS), exclude_unset=True)
    for field, name in NON_NULLABLE_FIELDS.items():
        if field in changes and (changes[field] is None or str(changes[field]).strip() == ""):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{name} cannot be empty")
    _validate_status(changes.get("status"))
    if "customer_id" in changes:
        _validate_customer(db, changes["customer_id"])
    if "invoice_number" in changes:
        changes["invoice_number"] = changes["invoice_number"].strip()
        _ensure_unique_number(db, changes["invoice_number"], exclude_id=invoice.id)
    if "currency" in changes:
        changes["currency"] = changes["currency"].strip().upper()

    for field, value in changes.items():
        setattr(invoice, field, value)
    _commit_or_conflict(db)
    db.refresh(invoice)
    return serialize_invoice(invoice, include_customer=True)


@router.post("/{invoice_id}/send")
def send_invoice(invoice_id: str, db: Session = Depends(get_db)):
    invoice = _get_invoice_or_404(db, invoice_id)
    invoice.status = "sent"
    invoice.sent_at = utcnow()
    db.commit()
    db.refresh(invoice)
    logger.info("invoice marked as sent id=%s", invoice.id)
    return {"success": True, "invoice": serialize_invoice(invoice, include_customer=True), "message": "Invoice marked as sent"}


@router.delete("/{invoice_id}")
def delete_invoice(invoice_id: str, db: Session = Depends(get_db)):
    invoice = _get_invoice_or_404(db, invoice_id)
    db.delete(invoice)
    db.commit()
    return {"success": True}
