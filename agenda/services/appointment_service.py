"""
Appointment service - Multi-Tenant.

Stores wizard submissions, lists, edits and counts appointments, and turns a
billing dialog completion into a Sale and a history snapshot.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload, undefer

from agenda.database import get_schema_capabilities, get_session
from agenda.domain.billing import Bill, DIALOG_STATUSES, COMPLETED, PARTIALLY_COMPLETED, NO_SHOW, CANCELLED
from agenda.domain.records import to_decimal
from agenda.domain.wizard import normalize_time, parse_date
from agenda.exceptions import AgendaError, NotFoundError, ValidationError
from agenda.models import (
    Appointment, AppointmentStatus, PaymentStatus, normalize_status as _lookup_status,
    AppUser, CompanyStaff, Sale
)
from agenda.services import catalog_service, history_service, sale_service
from agenda.services.events import appointment_requested, appointment_completion_requested

logger = logging.getLogger(__name__)

# Billing dialog status -> stored appointment status
COMPLETION_STATUS_MAP = {
    COMPLETED: AppointmentStatus.COMPLETED,
    PARTIALLY_COMPLETED: AppointmentStatus.COMPLETED,
    CANCELLED: AppointmentStatus.CANCELLED,
    NO_SHOW: AppointmentStatus.NO_SHOW,
}
BILLABLE_COMPLETIONS = (COMPLETED, PARTIALLY_COMPLETED)

PAYMENT_STATUSES = tuple(status.value for status in PaymentStatus)

# Stored status -> key in the stats overview
STATS_KEYS = {
    AppointmentStatus.PENDING: 'pendingAppointments',
    AppointmentStatus.CONFIRMED: 'confirmedAppointments',
    AppointmentStatus.IN_PROGRESS: 'inProgressAppointments',
    AppointmentStatus.COMPLETED: 'completedAppointments',
    AppointmentStatus.CANCELLED: 'cancelledAppointments',
    AppointmentStatus.NO_SHOW: 'noShowAppointments',
}


def normalize_status(value) -> AppointmentStatus:
    """
    Normalize an appointment status from a request.

    Args:
        value: Label ('Pending', 'In Progress'), snake/kebab case ('no_show',
            'in-progress') or numeric code (3, '3')

    Returns:
        AppointmentStatus member

    Raises:
        ValidationError: if the value is not a known status
    """
    status = _lookup_status(value)
    if status is None:
        valid = ', '.join(s.label for s in AppointmentStatus)
        raise ValidationError(f"Invalid status '{value}'. Must be one of: {valid}")
    return status


def _require(payload: Dict[str, Any], key: str):
    value = payload.get(key)
    if value in (None, ''):
        raise ValidationError(f'{key} is required')
    return value


def create_appointment(session, payload: Dict[str, Any]) -> Appointment:
    """
    Store an appointment from a wizard payload.

    Raises:
        ValidationError: missing or malformed fields
        NotFoundError: service, staff, space or client outside the company
    """
    company_id = _require(payload, 'companyId')
    client_id = _require(payload, 'clientId')
    service = catalog_service.get_service(session, _require(payload, 'serviceId'), company_id)

    client = session.query(AppUser).filter_by(id=client_id, active=True).first()
    if not client:
        raise NotFoundError(f'Client {client_id} not found')

    staff_id = payload.get('staffId')
    if staff_id:
        catalog_service.get_staff(session, staff_id, company_id)
    space_id = payload.get('spaceId')
    if space_id:
        catalog_service.get_space(session, space_id, company_id)

    status = normalize_status(payload.get('status') or AppointmentStatus.PENDING)
    payment_status = payload.get('paymentStatus') or PaymentStatus.PENDING.value
    if payment_status not in PAYMENT_STATUSES:
        raise ValidationError(f'Invalid payment status: {payment_status}')

    try:
        duration = int(payload.get('duration') or service.duration or 30)
    except (TypeError, ValueError):
        raise ValidationError('duration must be a whole number of minutes')

    price = payload.get('price')
    appointment = Appointment(
        company_id=company_id,
        client_id=client.id,
        service_id=service.id,
        staff_id=staff_id or None,
        space_id=space_id or None,
        date=parse_date(_require(payload, 'date')),
        time=normalize_time(_require(payload, 'time')),
        duration=duration,
        status=int(status),
        price=to_decimal(price if price is not None else service.price, 'price').quantize(Decimal('0.01')),
        payment_status=payment_status,
        notes=str(payload.get('notes') or '').strip() or None,
    )

    preferred = [int(staff) for staff in payload.get('preferredStaffIds') or []]
    if preferred:
        for preferred_id in preferred:
            catalog_service.get_staff(session, preferred_id, company_id)
        if get_schema_capabilities().appointment_preferred_staff:
            appointment.preferred_staff_ids = preferred
        else:
            logger.warning(
                f"[APPOINTMENTS] preferred_staff_ids column missing; dropping {preferred} "
                f"for company {company_id}"
            )

    session.add(appointment)
    catalog_service.register_client(session, client.id, company_id, source='appointment')
    session.commit()
    logger.info(
        f"[APPOINTMENTS] Appointment {appointment.id} created for company {company_id} "
        f"on {appointment.date} {appointment.time}"
    )
    return appointment


def _base_query(session):
    query = session.query(Appointment).options(
        joinedload(Appointment.client),
        joinedload(Appointment.service),
        joinedload(Appointment.staff).joinedload(CompanyStaff.user),
        joinedload(Appointment.space),
    )
    if get_schema_capabilities().appointment_preferred_staff:
        query = query.options(undefer(Appointment.preferred_staff_ids))
    return query


def list_appointments(session, company_id: int, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Paginated appointments of a company ordered by date and time.

    Filters: status, staffId, clientId, date, dateFrom, dateTo, limit, offset.
    """
    filters = filters or {}
    query = _base_query(session).filter(Appointment.company_id == company_id)

    if filters.get('status') not in (None, ''):
        query = query.filter(Appointment.status == int(normalize_status(filters['status'])))
    if filters.get('staffId'):
        query = query.filter(Appointment.staff_id == filters['staffId'])
    if filters.get('clientId'):
        query = query.filter(Appointment.client_id == filters['clientId'])
    if filters.get('date'):
        query = query.filter(Appointment.date == parse_date(filters['date']))
    if filters.get('dateFrom'):
        query = query.filter(Appointment.date >= parse_date(filters['dateFrom']))
    if filters.get('dateTo'):
        query = query.filter(Appointment.date <= parse_date(filters['dateTo']))

    limit, offset = catalog_service.normalize_pagination(filters.get('limit'), filters.get('offset'))
    total = query.order_by(None).count()
    rows = query.order_by(Appointment.date, Appointment.time, Appointment.id).limit(limit).offset(offset).all()
    return {
        'items': [appointment_to_dict(row) for row in rows],
        'pagination': catalog_service.build_pagination(total, limit, offset),
    }


def get_appointment(session, appointment_id, company_id: int) -> Appointment:
    appointment = _base_query(session).filter(
        Appointment.id == appointment_id,
        Appointment.company_id == company_id
    ).first()
    if not appointment:
        raise NotFoundError(f'Appointment {appointment_id} not found')
    return appointment


def appointment_to_dict(appointment: Appointment) -> Dict[str, Any]:
    data = {
        'id': appointment.id,
        'companyId': appointment.company_id,
        'clientId': appointment.client_id,
        'clientName': appointment.client.full_name if appointment.client else None,
        'serviceId': appointment.service_id,
        'serviceName': appointment.service.name if appointment.service else None,
        'staffId': appointment.staff_id,
        'staffName': appointment.staff.name if appointment.staff else None,
        'spaceId': appointment.space_id,
        'spaceName': appointment.space.name if appointment.space else None,
        'date': appointment.date.isoformat() if appointment.date else None,
        'time': appointment.time,
        'duration': appointment.duration,
        'status': appointment.status_label,
        'statusCode': appointment.status,
        'price': str(appointment.price) if appointment.price is not None else '0',
        'paymentStatus': appointment.payment_status,
        'paymentMethod': appointment.payment_method,
        'notes': appointment.notes,
        'saleId': appointment.sale_id,
    }
    if get_schema_capabilities().appointment_preferred_staff:
        data['preferredStaffIds'] = list(appointment.preferred_staff_ids or [])
    return data


def update_status(session, appointment_id, company_id: int, status) -> Appointment:
    appointment = get_appointment(session, appointment_id, company_id)
    appointment.status = int(normalize_status(status))
    session.commit()
    logger.info(f"[APPOINTMENTS] Appointment {appointment_id} status -> {appointment.status_label}")
    return appointment


def update_payment(session, appointment_id, company_id: int, payment_status: str,
                   payment_method: Optional[str] = None) -> Appointment:
    if payment_status not in PAYMENT_STATUSES:
        raise ValidationError(f"Invalid payment status. Must be one of: {', '.join(PAYMENT_STATUSES)}")
    appointment = get_appointment(session, appointment_id, company_id)
    appointment.payment_status = payment_status
    if payment_method:
        appointment.payment_method = payment_method
    session.commit()
    return appointment


def _apply_changes(session, appointment: Appointment, company_id: int, data: Dict[str, Any]) -> None:
    if 'serviceId' in data:
        service = catalog_service.get_service(session, _require(data, 'serviceId'), company_id)
        appointment.service_id = service.id
    for key, column, lookup in (('staffId', 'staff_id', catalog_service.get_staff),
                                ('spaceId', 'space_id', catalog_service.get_space)):
        if key in data:
            value = data[key]
            if value in (None, ''):
                setattr(appointment, column, None)
            else:
                setattr(appointment, column, lookup(session, value, company_id).id)

    if 'date' in data:
        appointment.date = parse_date(_require(data, 'date'))
    if 'time' in data:
        appointment.time = normalize_time(_require(data, 'time'))
    if 'duration' in data:
        try:
            duration = int(data['duration'])
        except (TypeError, ValueError):
            raise ValidationError('duration must be a whole number of minutes')
        if duration <= 0:
            raise ValidationError('duration must be greater than 0')
        appointment.duration = duration
    if 'price' in data:
        price = to_decimal(data['price'], 'price')
        if price < 0:
            raise ValidationError('price cannot be negative')
        appointment.price = price.quantize(Decimal('0.01'))
    if 'status' in data:
        appointment.status = int(normalize_status(data['status']))
    if 'paymentStatus' in data:
        if data['paymentStatus'] not in PAYMENT_STATUSES:
            raise ValidationError(f"Invalid payment status: {data['paymentStatus']}")
        appointment.payment_status = data['paymentStatus']
    if 'paymentMethod' in data:
        appointment.payment_method = data['paymentMethod'] or None
    if 'notes' in data:
        appointment.notes = str(data['notes'] or '').strip() or None


def update_appointment(session, appointment_id, company_id: int, data: Dict[str, Any]) -> Appointment:
    """
    Change only the given fields of an appointment.

    Accepts serviceId, staffId, spaceId, date, time, duration, price, status,
    paymentStatus, paymentMethod and notes; references are checked against
    the company. A null staffId or spaceId clears it.
    """
    appointment = get_appointment(session, appointment_id, company_id)
    try:
        _apply_changes(session, appointment, company_id, data)
        session.commit()
    except (AgendaError, SQLAlchemyError):
        session.rollback()
        raise
    logger.info(f"[APPOINTMENTS] Appointment {appointment_id} updated: {', '.join(sorted(data))}")
    return get_appointment(session, appointment_id, company_id)


def delete_appointment(session, appointment_id, company_id: int) -> None:
    """Delete an appointment; its sale and history snapshots are kept."""
    appointment = get_appointment(session, appointment_id, company_id)
    session.delete(appointment)
    session.commit()
    logger.info(f"[APPOINTMENTS] Appointment {appointment_id} deleted for company {company_id}")


def appointment_stats(session, company_id: int) -> Dict[str, int]:
    """Appointment counts of a company, in total and per status."""
    rows = session.query(Appointment.status, func.count(Appointment.id)).filter(
        Appointment.company_id == company_id
    ).group_by(Appointment.status).all()
    counts = dict(rows)
    stats = {'totalAppointments': sum(counts.values())}
    for status, key in STATS_KEYS.items():
        stats[key] = counts.get(int(status), 0)
    return stats


def complete_appointment(session, appointment_id, company_id: int, completion: Dict[str, Any],
                         staff_user_id: Optional[int] = None) -> Tuple[Appointment, Optional[Sale]]:
    """
    Apply a billing dialog completion.

    completed / partially_completed mark the appointment Completed and create
    a Sale from the billing items (totals recomputed here). cancelled and
    no_show only change the status. Every completion leaves a history
    snapshot.

    Returns:
        (appointment, sale or None)
    """
    if not isinstance(completion, dict):
        raise ValidationError('completionData must be an object')
    dialog_status = completion.get('status') or COMPLETED
    if not isinstance(dialog_status, str) or dialog_status.strip().lower() not in DIALOG_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(DIALOG_STATUSES)}")
    dialog_status = dialog_status.strip().lower()
    entries = sale_service.billing_entries(completion.get('billingItems'))

    appointment = get_appointment(session, appointment_id, company_id)
    sale = None
    items = []
    totals = None

    try:
        if dialog_status in BILLABLE_COMPLETIONS:
            if appointment.sale_id:
                raise ValidationError(f'Appointment {appointment_id} already has sale {appointment.sale_id}')

            bill = Bill.from_list(entries)
            sale = sale_service.build_sale(
                session, company_id, appointment.client_id, bill,
                staff_user_id=staff_user_id,
                notes=completion.get('notes'),
                sent_total=completion.get('totalAmount'),
            )
            appointment.sale_id = sale.id
            items = bill.items
            totals = bill.totals()

        appointment.status = int(COMPLETION_STATUS_MAP[dialog_status])
        history_service.record_completion(
            session, appointment, dialog_status, items,
            totals=totals, notes=completion.get('notes'), sale=sale,
        )
        session.commit()
    except (AgendaError, SQLAlchemyError):
        session.rollback()
        raise

    logger.info(
        f"[APPOINTMENTS] Appointment {appointment_id} closed as {dialog_status}"
        + (f" with sale {sale.id} (total {sale.total_amount})" if sale else "")
    )
    return appointment, sale


# Event receivers

def on_appointment_requested(sender, payload=None, **extra):
    """Persist a wizard submission; failures are logged, never raised to the sender."""
    session = get_session()
    try:
        appointment = create_appointment(session, payload or {})
    except (AgendaError, SQLAlchemyError) as e:
        session.rollback()
        logger.error(f"[APPOINTMENTS] Could not create appointment from {payload}: {e}")
        return None
    return appointment.id


def on_completion_requested(sender, payload=None, **extra):
    """Persist a billing dialog completion; failures are logged, never raised to the sender."""
    payload = payload or {}
    session = get_session()
    try:
        _, sale = complete_appointment(
            session,
            payload.get('appointmentId'),
            payload.get('companyId'),
            payload.get('completion') or {},
            staff_user_id=payload.get('staffUserId'),
        )
    except (AgendaError, SQLAlchemyError) as e:
        session.rollback()
        logger.error(f"[APPOINTMENTS] Could not complete appointment {payload.get('appointmentId')}: {e}")
        return None
    return sale.id if sale else None


def register_event_handlers() -> None:
    """Connect the receivers; connecting twice is a no-op."""
    appointment_requested.connect(on_appointment_requested)
    appointment_completion_requested.connect(on_completion_requested)
