"""Appointment history service - Multi-Tenant.

One snapshot per billing dialog completion, written by the appointment
service in the same transaction; read-only for everyone else.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from agenda.domain.billing import BillTotals, BillingItem, PRODUCT, SERVICE
from agenda.domain.wizard import parse_date
from agenda.exceptions import NotFoundError
from agenda.models import Appointment, AppointmentHistory, Sale
from agenda.services import catalog_service

logger = logging.getLogger(__name__)

MONEY = Decimal('0.01')


def _used_line(item: BillingItem) -> Dict[str, Any]:
    line = {
        'name': item.name,
        'quantity': str(item.quantity),
        'unitPrice': str(item.unit_price),
        'discount': str(item.discount_percent),
        'lineTotal': str(item.line_total.quantize(MONEY, rounding=ROUND_HALF_UP)),
    }
    if item.kind == SERVICE:
        line['serviceId'] = item.service_id
    else:
        line.update({'productId': item.product_id, 'variantId': item.variant_id, 'unit': item.unit})
    return line


def record_completion(session, appointment: Appointment, completion_status: str,
                      items: List[BillingItem], totals: Optional[BillTotals] = None,
                      notes: Optional[str] = None, sale: Optional[Sale] = None) -> AppointmentHistory:
    """Add the snapshot of a closed appointment to the session; the caller commits."""
    entry = AppointmentHistory(
        company_id=appointment.company_id,
        user_id=appointment.client_id,
        appointment_id=appointment.id,
        sale_id=sale.id if sale else None,
        service_id=appointment.service_id,
        service_name=appointment.service.name if appointment.service else None,
        service_price=appointment.price,
        staff_id=appointment.staff_id,
        staff_name=appointment.staff.name if appointment.staff else None,
        space_id=appointment.space_id,
        space_name=appointment.space.name if appointment.space else None,
        appointment_date=appointment.date,
        appointment_time=appointment.time,
        completion_status=completion_status,
        completion_notes=str(notes or '').strip() or None,
        services_used=[_used_line(item) for item in items if item.kind == SERVICE],
        products_used=[_used_line(item) for item in items if item.kind == PRODUCT],
        subtotal=totals.subtotal if totals else Decimal('0'),
        discount_amount=totals.discount_amount if totals else Decimal('0'),
        total_amount=totals.final_total if totals else Decimal('0'),
    )
    session.add(entry)
    logger.info(f"[HISTORY] Appointment {appointment.id} recorded as {completion_status}")
    return entry


def history_to_dict(entry: AppointmentHistory) -> Dict[str, Any]:
    return {
        'id': entry.id,
        'companyId': entry.company_id,
        'userId': entry.user_id,
        'userName': entry.user.full_name if entry.user else None,
        'appointmentId': entry.appointment_id,
        'saleId': entry.sale_id,
        'serviceId': entry.service_id,
        'serviceName': entry.service_name,
        'servicePrice': str(entry.service_price) if entry.service_price is not None else None,
        'staffId': entry.staff_id,
        'staffName': entry.staff_name,
        'spaceId': entry.space_id,
        'spaceName': entry.space_name,
        'appointmentDate': entry.appointment_date.isoformat() if entry.appointment_date else None,
        'appointmentTime': entry.appointment_time,
        'completionStatus': entry.completion_status,
        'completionNotes': entry.completion_notes,
        'servicesUsed': list(entry.services_used or []),
        'productsUsed': list(entry.products_used or []),
        'subtotal': str(entry.subtotal),
        'discountAmount': str(entry.discount_amount),
        'totalAmount': str(entry.total_amount),
        'createdAt': entry.created_at.isoformat() if entry.created_at else None,
    }


def list_history(session, company_id: int, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Paginated history of a company, latest appointment first.

    Filters: userId, serviceId, staffId, dateFrom, dateTo, limit, offset.
    """
    filters = filters or {}
    query = session.query(AppointmentHistory).filter(AppointmentHistory.company_id == company_id)
    for key, column in (('userId', AppointmentHistory.user_id),
                        ('serviceId', AppointmentHistory.service_id),
                        ('staffId', AppointmentHistory.staff_id)):
        if filters.get(key):
            query = query.filter(column == filters[key])
    if filters.get('dateFrom'):
        query = query.filter(AppointmentHistory.appointment_date >= parse_date(filters['dateFrom']))
    if filters.get('dateTo'):
        query = query.filter(AppointmentHistory.appointment_date <= parse_date(filters['dateTo']))

    limit, offset = catalog_service.normalize_pagination(filters.get('limit'), filters.get('offset'))
    total = query.order_by(None).count()
    rows = query.order_by(
        AppointmentHistory.appointment_date.desc(),
        AppointmentHistory.appointment_time.desc(),
        AppointmentHistory.id.desc()
    ).limit(limit).offset(offset).all()
    return {
        'items': [history_to_dict(row) for row in rows],
        'pagination': catalog_service.build_pagination(total, limit, offset),
    }


def get_history(session, history_id, company_id: int) -> AppointmentHistory:
    entry = session.query(AppointmentHistory).filter(
        AppointmentHistory.id == history_id,
        AppointmentHistory.company_id == company_id
    ).first()
    if not entry:
        raise NotFoundError(f'History entry {history_id} not found')
    return entry


def get_appointment_history(session, appointment_id, company_id: int) -> AppointmentHistory:
    """Latest snapshot of an appointment."""
    entry = session.query(AppointmentHistory).filter(
        AppointmentHistory.appointment_id == appointment_id,
        AppointmentHistory.company_id == company_id
    ).order_by(AppointmentHistory.id.desc()).first()
    if not entry:
        raise NotFoundError(f'No history for appointment {appointment_id}')
    return entry
