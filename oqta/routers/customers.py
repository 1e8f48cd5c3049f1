from __future__ import annotations

import csv
import io
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from oqta.core.database import get_db
from oqta.deps import require_admin
from oqta.models.customer import Customer
from oqta.models.customer_session import CustomerSession
from oqta.models.invoice import Invoice
from oqta.routers.billing import serialize_invoice
from oqta.schemas.common import CamelModel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/customers", tags=["customers"], dependencies=[Depends(require_admin)])

CUSTOMER_FIELDS = ("name", "email", "phone", "company", "notes")


class CustomerPayload(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    notes: Optional[str] = None


class LinkSessionPayload(CamelModel):
    customer_id: Optional[str] = None
    session_id: Optional[str] = None
    notes: Optional[str] = None


def _iso(value):
    return value.isoformat() if value else None


def serialize_customer(customer: Customer) -> Dict[str, Any]:
    return {
        "id": customer.id,
        "name": customer.name,
        "email": customer.email,
        "phone": customer.phone,
        "company": customer.company,
        "notes": customer.notes,
        "createdAt": _iso(customer.created_at),
        "updatedAt": _iso(customer.updated_at),
    }


def serialize_link(link: CustomerSession) -> Dict[str, Any]:
    return {
        "id": link.id,
        "customerId": link.customer_id,
        "sessionId": link.session_id,
        "linkedBy": link.linked_by,
        "notes": link.notes,
        "linkedAt": _iso(link.linked_at),
    }


def _get_customer_or_404(db: Session, customer_id: str) -> Customer:
    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if customer is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    return customer


def _search_filter(search: Optional[str]):
    clean = (search or "").strip()
    if not clean:
        return None
    like = f"%{clean}%"
    return or_(
        Customer.name.ilike(like),
        Customer.email.ilike(like),
        Customer.phone.ilike(like),
        Customer.company.ilike(like),
    )


@router.get("")
def list_customers(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    search: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    query = db.query(Customer)
    search_filter = _search_filter(search)
    if search_filter is not None:
        query = query.filter(search_filter)

    total = query.count()
    customers = query.order_by(Customer.created_at.desc()).offset((page - 1) * limit).limit(limit).all()

    ids = [customer.id for customer in customers]
    session_counts = dict(
        db.query(CustomerSession.customer_id, func.count(CustomerSession.id))
        .filter(CustomerSession.customer_id.in_(ids))
        .group_by(CustomerSession.customer_id)
        .all()
    ) if ids else {}
    invoice_counts = dict(
        db.query(Invoice.customer_id, func.count(Invoice.id))
        .filter(Invoice.customer_id.in_(ids))
        .group_by(Invoice.customer_id)
        .all()
    ) if ids else {}

    items = []
    for customer in customers:
        item = serialize_customer(customer)
        item["sessionCount"] = int(session_counts.get(customer.id, 0))
        item["invoiceCount"] = int(invoice_counts.get(customer.id, 0))
        items.append(item)

    return {
        "customers": items,
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": -(-total // limit),
    }


@router.get("/export")
def export_customers(db: Session = Depends(get_db)):
    customers = db.query(Customer).order_by(Customer.created_at.desc()).all()
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["id", "name", "email", "phone", "company", "notes", "createdAt"])
    for customer in customers:
        writer.writerow(
            [
                customer.id,
                customer.name,
                customer.email or "",
                customer.phone or "",
                customer.company or "",
                customer.notes or "",
                _iso(customer.created_at) or "",
            ]
        )
    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="customers.csv"'},
    )


@router.post("/link-session")
def link_session(
    payload: LinkSessionPayload,
    user: Dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if not payload.customer_id or not payload.session_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Customer ID and Session ID are required")
    _get_customer_or_404(db, payload.customer_id)

    link = CustomerSession(
        customer_id=payload.customer_id,
        session_id=payload.session_id,
        linked_by=user.get("userId") or user.get("sub"),
        notes=payload.notes,
    )
    db.add(link)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Session already linked to this customer")
    db.refresh(link)
    logger.info("session linked customer_id=%s session_id=%s", link.customer_id, link.session_id)
    return serialize_link(link)


@router.delete("/sessions/{link_id}")
def unlink_session(link_id: str, db: Session = Depends(get_db)):
    link = db.query(CustomerSession).filter(CustomerSession.id == link_id).first()
    if link is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer session link not found")
    db.delete(link)
    db.commit()
    return {"success": True}


@router.get("/{customer_id}")
def get_customer(customer_id: str, db: Session = Depends(get_db)):
    customer = _get_customer_or_404(db, customer_id)
    body = serialize_customer(customer)
    body["sessions"] = [serialize_link(link) for link in customer.sessions]
    body["invoices"] = [serialize_invoice(invoice) for invoice in customer.invoices]
    return body


@router.post("")
def create_customer(payload: CustomerPayload, db: Session = Depends(get_db)):
    if not (payload.name or "").strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name is required")
    customer = Customer(**payload.model_dump(include=set(CUSTOMER_FIELDS)))
    customer.name = customer.name.strip()
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return serialize_customer(customer)


@router.put("/{customer_id}")
def update_customer(customer_id: str, payload: CustomerPayload, db: Session = Depends(get_db)):
    customer = _get_customer_or_404(db, customer_id)
    changes = payload.model_dump(include=set(CUSTOMER_FIELDS), exclude_unset=True)
    if "name" in changes and not (changes["name"] or "").strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name is required")
    for field, value in changes.items():
        setattr(customer, field, value)
    db.commit()
    db.refresh(customer)
    return serialize_customer(customer)


@router.delete("/{customer_id}")
def delete_customer(customer_id: str, db: Session = Depends(get_db)):
    customer = _get_customer_or_404(db, customer_id)
    db.delete(customer)
    db.commit()
    return {"success": True}
