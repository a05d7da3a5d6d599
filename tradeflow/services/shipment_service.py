"""Shipment service - one shipment per order, numbered SHYYYYMMDDNNN per company."""
import logging
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tradeflow.exceptions import NotFoundError, ConflictError, ValidationError
from tradeflow.models import Shipment, ShipmentStatus, Order, DocumentKind
from tradeflow.models.status import ensure_transition, parse_status
from tradeflow.services.concurrency import lock_for_update, run_with_retry
from tradeflow.services.data_scope import DataScope
from tradeflow.services.dashboard_service import invalidate_dashboard
from tradeflow.services.sequence_service import next_number
from tradeflow.utils.dates import parse_date
from tradeflow.utils.number_format import blank_to_none
from tradeflow.utils.settings import get_setting

logger = logging.getLogger(__name__)

TEXT_FIELDS = ('booking_number', 'vessel_voyage_info', 'way_bill_number', 'truck_number', 'bl_number', 'notes')
SHIPMENT_FIELDS = TEXT_FIELDS + ('booking_date',)


def normalize_shipment_fields(fields: dict) -> dict:
    unknown = set(fields) - set(SHIPMENT_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown shipment field(s): {', '.join(sorted(unknown))}")

    normalized = {name: blank_to_none(fields[name]) for name in TEXT_FIELDS if name in fields}
    if 'booking_date' in fields:
        normalized['booking_date'] = parse_date(fields['booking_date'], 'booking_date')
    return normalized


def create_shipment(session: Session, order_id: int, company_id: int, user_id: Optional[int], **fields) -> Shipment:
    """Create the shipment for an order. A second shipment for the same order is a conflict."""
    normalized = normalize_shipment_fields(fields)

    def _op():
        try:
            order = lock_for_update(
                session.query(Order).filter(Order.id == order_id, Order.company_id == company_id)
            ).first()
            if order is None:
                raise NotFoundError(f"Order {order_id} not found")
            if session.query(Shipment.id).filter(Shipment.order_id == order.id).first():
                raise ConflictError(f"Shipment already exists for order {order.order_number}")

            shipment = Shipment(
                company_id=company_id,
                order_id=order.id,
                shipment_number=next_number(session, DocumentKind.SHIPMENT, company_id),
                status=ShipmentStatus.PENDING,
                created_by=user_id,
                updated_by=user_id,
                **normalized
            )
            session.add(shipment)
            session.commit()
            return shipment
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError(f"Shipment already exists for order {order_id}") from exc
        except Exception:
            session.rollback()
            raise

    shipment = run_with_retry(
        session, _op, operation='create_shipment',
        attempts=get_setting('SEQUENCE_RETRY_ATTEMPTS', 5),
        backoff_base=get_setting('SEQUENCE_RETRY_BACKOFF', 0.05),
    )
    logger.info(f"[SHIPMENT] Created {shipment.shipment_number} for order {order_id}")
    invalidate_dashboard(company_id)
    return shipment


def _lock_shipment(session: Session, shipment_id: int, company_id: int) -> Shipment:
    shipment = lock_for_update(
        session.query(Shipment).filter(Shipment.id == shipment_id, Shipment.company_id == company_id)
    ).first()
    if shipment is None:
        raise NotFoundError(f"Shipment {shipment_id} not found")
    return shipment


def update_shipment(session: Session, shipment_id: int, company_id: int, user_id: Optional[int], **fields) -> Shipment:
    normalized = normalize_shipment_fields(fields)
    try:
        shipment = _lock_shipment(session, shipment_id, company_id)
        for name, value in normalized.items():
            setattr(shipment, name, value)
        shipment.updated_by = user_id
        session.commit()
        return shipment
    except Exception:
        session.rollback()
        raise


def update_shipment_status(session: Session, shipment_id: int, company_id: int, user_id: Optional[int],
                           status) -> Shipment:
    target = parse_status(ShipmentStatus, status)
    try:
        shipment = _lock_shipment(session, shipment_id, company_id)
        if ensure_transition('shipment', shipment.status, target):
            shipment.status = target
            shipment.updated_by = user_id
        session.commit()
        return shipment
    except Exception:
        session.rollback()
        raise


def delete_shipment(session: Session, shipment_id: int, company_id: int) -> None:
    try:
        shipment = _lock_shipment(session, shipment_id, company_id)
        session.delete(shipment)
        session.commit()
    except Exception:
        session.rollback()
        raise
    invalidate_dashboard(company_id)


def get_shipment(session: Session, shipment_id: int, scope: DataScope) -> Shipment:
    shipment = scope.apply(session.query(Shipment), Shipment).filter(Shipment.id == shipment_id).first()
    if shipment is None:
        raise NotFoundError(f"Shipment {shipment_id} not found")
    return shipment


def get_shipments(session: Session, scope: DataScope, status=None, search: Optional[str] = None) -> list:
    query = scope.apply(session.query(Shipment), Shipment)
    if status:
        query = query.filter(Shipment.status == parse_status(ShipmentStatus, status))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Shipment.shipment_number.ilike(pattern),
            Shipment.booking_number.ilike(pattern),
            Shipment.bl_number.ilike(pattern),
        ))
    return query.order_by(Shipment.created_at.desc(), Shipment.id.desc()).all()
