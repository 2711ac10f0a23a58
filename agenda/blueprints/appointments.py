"""Appointments API blueprint - Multi-Tenant.

The creation wizard and the billing dialog are drafts held in the Flask
session, one per company (one billing draft per appointment). Each call
mutates the draft and returns its new state; submissions are published as
events and answered with 202 without waiting for them to be stored.
Stored appointments are listed, edited, deleted and counted here too, and
the completion history is exposed read-only.
"""
from datetime import date

from flask import Blueprint, request, jsonify, session, g, current_app

from agenda.database import get_session
from agenda.domain.billing import BillingDialog
from agenda.domain.wizard import AppointmentWizard, time_slots
from agenda.exceptions import NotFoundError, UnauthorizedError, ValidationError
from agenda.middleware import require_login, require_company, require_role, is_owner
from agenda.services import appointment_service, catalog_service, history_service
from agenda.services.events import publish_event, APPOINTMENT_REQUESTED, APPOINTMENT_COMPLETION_REQUESTED

appointments_bp = Blueprint('appointments', __name__, url_prefix='/api/appointments')

WIZARD_SESSION_KEY = 'wizard_by_company'
BILLING_SESSION_KEY = 'billing_by_company'


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('A JSON object body is required')
    return data


def _int_id(value, name: str):
    if value in (None, ''):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{name} must be an integer id')


# Wizard draft storage

def _slots():
    return time_slots(
        current_app.config.get('BOOKING_FIRST_SLOT', '07:00'),
        current_app.config.get('BOOKING_LAST_SLOT', '19:00'),
        current_app.config.get('BOOKING_SLOT_MINUTES', 15),
    )


def _service_lookup(company_id: int):
    db_session = get_session()

    def lookup(service_id):
        return catalog_service.get_service_record(db_session, service_id, company_id)
    return lookup


def _dispatch_appointment(payload: dict) -> None:
    publish_event(APPOINTMENT_REQUESTED, payload)


def _wizard_options():
    return {
        'service_lookup': _service_lookup(g.company_id),
        'dispatch': _dispatch_appointment,
        'slots': _slots(),
        'max_preferred_staff': current_app.config.get('MAX_PREFERRED_STAFF', 3),
    }


def _load_wizard() -> AppointmentWizard:
    data = session.get(WIZARD_SESSION_KEY, {}).get(str(g.company_id))
    if not data:
        raise NotFoundError('No appointment wizard open')
    return AppointmentWizard.from_dict(data, **_wizard_options())


def _save_wizard(wizard: AppointmentWizard) -> None:
    drafts = dict(session.get(WIZARD_SESSION_KEY, {}))
    drafts[str(g.company_id)] = wizard.to_dict()
    session[WIZARD_SESSION_KEY] = drafts
    session.modified = True


def _drop_wizard() -> None:
    drafts = dict(session.get(WIZARD_SESSION_KEY, {}))
    drafts.pop(str(g.company_id), None)
    session[WIZARD_SESSION_KEY] = drafts
    session.modified = True


def _wizard_response(wizard: AppointmentWizard, status_code: int = 200):
    return jsonify({'status': 'success', 'data': wizard.to_dict()}), status_code


def _apply_wizard_fields(wizard: AppointmentWizard, data: dict) -> None:
    """Apply the fields present in ``data``; any error leaves the stored draft untouched."""
    db_session = get_session()
    company_id = g.company_id

    if 'date' in data:
        wizard.set_date(data['date'], today=date.today())
    if 'time' in data:
        wizard.set_time(data['time'])
    if 'serviceId' in data:
        wizard.select_service(_int_id(data['serviceId'], 'serviceId'))
    if 'staffId' in data:
        staff_id = _int_id(data['staffId'], 'staffId')
        if staff_id is not None:
            catalog_service.get_staff(db_session, staff_id, company_id)
        wizard.select_staff(staff_id)
    if 'preferredStaffIds' in data:
        wizard.preferred_staff_ids = []
        for staff_id in data['preferredStaffIds'] or []:
            staff_id = _int_id(staff_id, 'preferredStaffIds')
            catalog_service.get_staff(db_session, staff_id, company_id)
            wizard.toggle_preferred_staff(staff_id)
    if 'togglePreferredStaffId' in data:
        staff_id = _int_id(data['togglePreferredStaffId'], 'togglePreferredStaffId')
        catalog_service.get_staff(db_session, staff_id, company_id)
        wizard.toggle_preferred_staff(staff_id)
    if 'spaceId' in data:
        space_id = _int_id(data['spaceId'], 'spaceId')
        if space_id is not None:
            catalog_service.get_space(db_session, space_id, company_id)
        wizard.select_space(space_id)
    if 'clientId' in data:
        client_id = _int_id(data['clientId'], 'clientId')
        if client_id is not None:
            catalog_service.get_company_user(db_session, client_id, company_id)
        wizard.select_client(client_id)
    if 'notes' in data:
        wizard.set_notes(data['notes'])


@appointments_bp.route('/wizard', methods=['POST'])
@require_login
@require_company
def open_wizard():
    """Open a fresh wizard, replacing any draft for this company."""
    wizard = AppointmentWizard(g.company_id, is_owner(), **_wizard_options())
    _apply_wizard_fields(wizard, _json_body())
    _save_wizard(wizard)
    return _wizard_response(wizard, 201)


@appointments_bp.route('/wizard', methods=['GET'])
@require_login
@require_company
def get_wizard():
    return _wizard_response(_load_wizard())


@appointments_bp.route('/wizard', methods=['PATCH'])
@require_login
@require_company
def update_wizard():
    wizard = _load_wizard()
    _apply_wizard_fields(wizard, _json_body())
    _save_wizard(wizard)
    return _wizard_response(wizard)


@appointments_bp.route('/wizard/next', methods=['POST'])
@require_login
@require_company
def wizard_next():
    wizard = _load_wizard()
    payload = wizard.next()
    if payload is None:
        _save_wizard(wizard)
        return _wizard_response(wizard)

    _drop_wizard()
    return jsonify({'status': 'accepted', 'message': 'Appointment request sent', 'data': payload}), 202


@appointments_bp.route('/wizard/previous', methods=['POST'])
@require_login
@require_company
def wizard_previous():
    wizard = _load_wizard()
    wizard.previous()
    _save_wizard(wizard)
    return _wizard_response(wizard)


@appointments_bp.route('/wizard/reset', methods=['POST'])
@require_login
@require_company
def wizard_reset():
    wizard = _load_wizard()
    wizard.reset()
    _save_wizard(wizard)
    return _wizard_response(wizard)


@appointments_bp.route('/wizard', methods=['DELETE'])
@require_login
@require_company
def cancel_wizard():
    wizard = _load_wizard()
    wizard.cancel()
    _drop_wizard()
    return _wizard_response(wizard)


@appointments_bp.route('/wizard/time-slots', methods=['GET'])
@require_login
def wizard_time_slots():
    return jsonify({'status': 'success', 'items': list(_slots())})


# Billing dialog draft storage

def _billing_drafts() -> dict:
    return dict(session.get(BILLING_SESSION_KEY, {}).get(str(g.company_id), {}))


def _dispatch_completion(appointment_id: int):
    company_id = g.company_id
    staff_user_id = g.user.id

    def dispatch(payload: dict) -> None:
        publish_event(APPOINTMENT_COMPLETION_REQUESTED, {
            'appointmentId': appointment_id,
            'companyId': company_id,
            'staffUserId': staff_user_id,
            'completion': payload,
        })
    return dispatch


def _load_dialog(appointment_id: int) -> BillingDialog:
    data = _billing_drafts().get(str(appointment_id))
    if not data:
        raise NotFoundError(f'No billing open for appointment {appointment_id}')
    return BillingDialog.from_dict(data, dispatch=_dispatch_completion(appointment_id))


def _store_billing_drafts(drafts: dict) -> None:
    all_drafts = dict(session.get(BILLING_SESSION_KEY, {}))
    all_drafts[str(g.company_id)] = drafts
    session[BILLING_SESSION_KEY] = all_drafts
    session.modified = True


def _save_dialog(dialog: BillingDialog) -> None:
    drafts = _billing_drafts()
    drafts[str(dialog.appointment_id)] = dialog.to_dict()
    _store_billing_drafts(drafts)


def _drop_dialog(appointment_id: int) -> None:
    drafts = _billing_drafts()
    drafts.pop(str(appointment_id), None)
    _store_billing_drafts(drafts)


def _dialog_response(dialog: BillingDialog, status_code: int = 200, **extra):
    return jsonify({'status': 'success', 'data': dialog.to_dict(), **extra}), status_code


@appointments_bp.route('/<int:appointment_id>/billing', methods=['POST'])
@require_login
@require_company
@require_role('STAFF')
def open_billing(appointment_id):
    """Open the billing dialog pre-filled with the appointment's service."""
    appointment = appointment_service.get_appointment(get_session(), appointment_id, g.company_id)
    dialog = BillingDialog.open(
        appointment.id,
        g.company_id,
        service_id=appointment.service_id,
        service_name=appointment.service.name if appointment.service else None,
        price=appointment.price,
        dispatch=_dispatch_completion(appointment.id),
    )
    _save_dialog(dialog)
    return _dialog_response(dialog, 201)


@appointments_bp.route('/<int:appointment_id>/billing', methods=['GET'])
@require_login
@require_company
@require_role('STAFF')
def get_billing(appointment_id):
    return _dialog_response(_load_dialog(appointment_id))


@appointments_bp.route('/<int:appointment_id>/billing', methods=['PATCH'])
@require_login
@require_company
@require_role('STAFF')
def update_billing(appointment_id):
    dialog = _load_dialog(appointment_id)
    data = _json_body()
    if 'status' in data:
        dialog.set_status(data['status'])
    if 'notes' in data:
        dialog.set_notes(data['notes'])
    _save_dialog(dialog)
    return _dialog_response(dialog)


@appointments_bp.route('/<int:appointment_id>/billing/products', methods=['POST'])
@require_login
@require_company
@require_role('STAFF')
def add_billing_product(appointment_id):
    """Add a product; with several usable variants the chooser is returned instead."""
    dialog = _load_dialog(appointment_id)
    product_id = _int_id(_json_body().get('productId'), 'productId')
    if product_id is None:
        raise ValidationError('productId is required')
    product = catalog_service.get_product_record(get_session(), product_id, g.company_id)
    selection = dialog.add_product(product)
    _save_dialog(dialog)
    return _dialog_response(dialog, selection=selection.to_dict())


@appointments_bp.route('/<int:appointment_id>/billing/products/<int:product_id>/variants/<int:variant_id>',
                       methods=['POST'])
@require_login
@require_company
@require_role('STAFF')
def choose_billing_variant(appointment_id, product_id, variant_id):
    dialog = _load_dialog(appointment_id)
    product = catalog_service.get_product_record(get_session(), product_id, g.company_id)
    item = dialog.choose_variant(product, variant_id)
    _save_dialog(dialog)
    return _dialog_response(dialog, item=item.to_dict())


@appointments_bp.route('/<int:appointment_id>/billing/services', methods=['POST'])
@require_login
@require_company
@require_role('STAFF')
def add_billing_service(appointment_id):
    dialog = _load_dialog(appointment_id)
    service_id = _int_id(_json_body().get('serviceId'), 'serviceId')
    if service_id is None:
        raise ValidationError('serviceId is required')
    service = catalog_service.get_service_record(get_session(), service_id, g.company_id)
    item = dialog.add_service(service)
    _save_dialog(dialog)
    return _dialog_response(dialog, item=item.to_dict())


@appointments_bp.route('/<int:appointment_id>/billing/items/<item_id>', methods=['PATCH'])
@require_login
@require_company
@require_role('STAFF')
def update_billing_item(appointment_id, item_id):
    dialog = _load_dialog(appointment_id)
    data = _json_body()
    dialog.update_item(item_id, quantity=data.get('quantity'), discount_percent=data.get('discount'))
    _save_dialog(dialog)
    return _dialog_response(dialog)


@appointments_bp.route('/<int:appointment_id>/billing/items/<item_id>', methods=['DELETE'])
@require_login
@require_company
@require_role('STAFF')
def remove_billing_item(appointment_id, item_id):
    dialog = _load_dialog(appointment_id)
    dialog.remove_item(item_id)
    _save_dialog(dialog)
    return _dialog_response(dialog)


@appointments_bp.route('/<int:appointment_id>/billing/submit', methods=['POST'])
@require_login
@require_company
@require_role('STAFF')
def submit_billing(appointment_id):
    dialog = _load_dialog(appointment_id)
    payload = dialog.submit()
    _drop_dialog(appointment_id)
    return jsonify({'status': 'accepted', 'message': 'Completion sent', 'data': payload}), 202


@appointments_bp.route('/<int:appointment_id>/billing', methods=['DELETE'])
@require_login
@require_company
@require_role('STAFF')
def discard_billing(appointment_id):
    _load_dialog(appointment_id)
    _drop_dialog(appointment_id)
    return jsonify({'status': 'success', 'message': 'Billing discarded'})


# Stored appointments

@appointments_bp.route('', methods=['GET'])
@require_login
@require_company
def list_appointments():
    filters = request.args.to_dict()
    if g.user_role == 'CLIENT':
        filters['clientId'] = g.user.id
    result = appointment_service.list_appointments(get_session(), g.company_id, filters)
    return jsonify({'status': 'success', **result})


@appointments_bp.route('/<int:appointment_id>', methods=['GET'])
@require_login
@require_company
def get_appointment(appointment_id):
    appointment = appointment_service.get_appointment(get_session(), appointment_id, g.company_id)
    if g.user_role == 'CLIENT' and appointment.client_id != g.user.id:
        raise NotFoundError(f'Appointment {appointment_id} not found')
    return jsonify({'status': 'success', 'data': appointment_service.appointment_to_dict(appointment)})


@appointments_bp.route('/<int:appointment_id>/status', methods=['PATCH'])
@require_login
@require_company
@require_role('STAFF')
def update_status(appointment_id):
    """Change the status; an optional ``completionData`` bills the appointment in the same call."""
    db_session = get_session()
    data = _json_body()
    completion = data.get('completionData')
    if completion:
        appointment, sale = appointment_service.complete_appointment(
            db_session, appointment_id, g.company_id, completion, staff_user_id=g.user.id
        )
        body = appointment_service.appointment_to_dict(appointment)
        return jsonify({'status': 'success', 'data': body, 'saleId': sale.id if sale else None})

    if 'status' not in data:
        raise ValidationError('status is required')
    appointment = appointment_service.update_status(db_session, appointment_id, g.company_id, data['status'])
    return jsonify({'status': 'success', 'data': appointment_service.appointment_to_dict(appointment)})


@appointments_bp.route('/<int:appointment_id>/payment', methods=['PATCH'])
@require_login
@require_company
@require_role('STAFF')
def update_payment(appointment_id):
    data = _json_body()
    appointment = appointment_service.update_payment(
        get_session(), appointment_id, g.company_id,
        data.get('paymentStatus'), data.get('paymentMethod')
    )
    return jsonify({'status': 'success', 'data': appointment_service.appointment_to_dict(appointment)})


@appointments_bp.route('/<int:appointment_id>', methods=['PUT'])
@require_login
@require_company
@require_role('STAFF')
def update_appointment(appointment_id):
    appointment = appointment_service.update_appointment(get_session(), appointment_id, g.company_id, _json_body())
    return jsonify({
        'status': 'success',
        'message': 'Appointment updated successfully',
        'data': appointment_service.appointment_to_dict(appointment),
    })


@appointments_bp.route('/<int:appointment_id>', methods=['DELETE'])
@require_login
@require_company
@require_role('STAFF')
def delete_appointment(appointment_id):
    appointment_service.delete_appointment(get_session(), appointment_id, g.company_id)
    return jsonify({'status': 'success', 'message': 'Appointment deleted successfully'})


@appointments_bp.route('/stats/overview', methods=['GET'])
@require_login
@require_company
@require_role('OWNER')
def appointment_stats():
    stats = appointment_service.appointment_stats(get_session(), g.company_id)
    return jsonify({'status': 'success', 'data': stats})


# Completion history (read-only)

@appointments_bp.route('/history', methods=['GET'])
@require_login
@require_company
def list_history():
    """Snapshots of closed appointments; clients only see their own."""
    filters = request.args.to_dict()
    if g.user_role == 'CLIENT':
        if _int_id(filters.get('userId'), 'userId') not in (None, g.user.id):
            raise UnauthorizedError('Clients can only list their own history')
        filters['userId'] = g.user.id
    result = history_service.list_history(get_session(), g.company_id, filters)
    return jsonify({'status': 'success', **result})


def _visible_history(entry):
    if g.user_role == 'CLIENT' and entry.user_id != g.user.id:
        raise NotFoundError(f'History entry {entry.id} not found')
    return jsonify({'status': 'success', 'data': history_service.history_to_dict(entry)})


@appointments_bp.route('/history/<int:history_id>', methods=['GET'])
@require_login
@require_company
def get_history(history_id):
    return _visible_history(history_service.get_history(get_session(), history_id, g.company_id))


@appointments_bp.route('/<int:appointment_id>/history', methods=['GET'])
@require_login
@require_company
def get_appointment_history(appointment_id):
    return _visible_history(history_service.get_appointment_history(get_session(), appointment_id, g.company_id))
