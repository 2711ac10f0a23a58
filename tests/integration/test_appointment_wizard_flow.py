"""
Integration tests for the appointment wizard API and appointment storage.
"""

import logging
import pytest
from datetime import date, timedelta
from decimal import Decimal

from agenda.exceptions import ValidationError
from agenda.models import Appointment, AppointmentStatus, CompanyStaff, UserCompany
from agenda.services import appointment_service
from agenda.services.events import publish_event, APPOINTMENT_REQUESTED


TOMORROW = (date.today() + timedelta(days=1)).isoformat()


def _next(client):
    response = client.post('/api/appointments/wizard/next')
    assert response.status_code in (200, 202), response.get_json()
    return response


class TestWizardApi:
    """Draft held in the session and driven step by step."""

    def test_open_and_get(self, owner_client):
        """A fresh wizard starts on the datetime step."""
        response = owner_client.post('/api/appointments/wizard')
        assert response.status_code == 201
        data = response.get_json()['data']
        assert data['step'] == 'datetime'
        assert data['isOwner'] is True
        assert data['canAdvance'] is False

        assert owner_client.get('/api/appointments/wizard').get_json()['data']['phase'] == 'editing'

    def test_get_without_wizard(self, owner_client):
        """No open wizard is a 404."""
        assert owner_client.get('/api/appointments/wizard').status_code == 404

    def test_time_slots(self, owner_client):
        """Slots follow the configured booking window."""
        items = owner_client.get('/api/appointments/wizard/time-slots').get_json()['items']
        assert items[0] == '07:00'
        assert items[-1] == '19:00'

    def test_next_blocked_by_invalid_step(self, owner_client):
        """Next on an incomplete step is a 400 and the step stays."""
        owner_client.post('/api/appointments/wizard')
        response = owner_client.post('/api/appointments/wizard/next')
        assert response.status_code == 400
        assert response.get_json()['message'] == 'Please select date and time'
        assert owner_client.get('/api/appointments/wizard').get_json()['data']['step'] == 'datetime'

    def test_invalid_patch_leaves_draft_untouched(self, owner_client):
        """A rejected field does not apply the other fields of the same call."""
        owner_client.post('/api/appointments/wizard')
        response = owner_client.patch('/api/appointments/wizard', json={'date': TOMORROW, 'time': '09:10'})
        assert response.status_code == 400
        assert owner_client.get('/api/appointments/wizard').get_json()['data']['date'] is None

    def test_service_of_other_company_rejected(self, owner_client, service2):
        """Only the company's own services can be picked."""
        owner_client.post('/api/appointments/wizard')
        response = owner_client.patch('/api/appointments/wizard', json={'serviceId': service2.id})
        assert response.status_code == 404

    def test_previous_and_reset(self, owner_client, service):
        """Previous steps back; reset clears everything."""
        owner_client.post('/api/appointments/wizard', json={'date': TOMORROW, 'time': '09:00'})
        _next(owner_client)
        data = owner_client.post('/api/appointments/wizard/previous').get_json()['data']
        assert data['step'] == 'datetime'
        assert data['time'] == '09:00'

        data = owner_client.post('/api/appointments/wizard/reset').get_json()['data']
        assert data['stepIndex'] == 0
        assert data['date'] is None
        assert data['time'] is None

    def test_cancel(self, owner_client):
        """DELETE cancels and discards the draft."""
        owner_client.post('/api/appointments/wizard')
        data = owner_client.delete('/api/appointments/wizard').get_json()['data']
        assert data['phase'] == 'cancelled'
        assert owner_client.get('/api/appointments/wizard').status_code == 404

    def test_owner_end_to_end(self, owner_client, session, company1, service, staff_member, client_user):
        """Tomorrow 09:00, service, staff, client: the payload is sent and stored."""
        owner_client.post('/api/appointments/wizard')
        owner_client.patch('/api/appointments/wizard', json={'date': TOMORROW, 'time': '09:00'})
        _next(owner_client)
        owner_client.patch('/api/appointments/wizard', json={'serviceId': service.id})
        _next(owner_client)
        owner_client.patch('/api/appointments/wizard', json={'staffId': staff_member.id})
        _next(owner_client)
        _next(owner_client)  # space skipped
        owner_client.patch('/api/appointments/wizard', json={'clientId': client_user.id})
        _next(owner_client)
        _next(owner_client)  # notes skipped

        response = _next(owner_client)

        assert response.status_code == 202
        payload = response.get_json()['data']
        assert payload['serviceId'] == service.id
        assert payload['staffId'] == staff_member.id
        assert payload['clientId'] == client_user.id
        assert payload['duration'] == 30
        assert Decimal(payload['price']) == Decimal('50')
        assert payload['status'] == 'Pending'
        assert payload['paymentStatus'] == 'Pending'
        assert payload['date'] == TOMORROW
        assert payload['time'] == '09:00'
        assert 'spaceId' not in payload
        assert 'notes' not in payload

        # Draft is gone right after sending
        assert owner_client.get('/api/appointments/wizard').status_code == 404

        appointment = session.query(Appointment).filter_by(company_id=company1.id).one()
        assert appointment.staff_id == staff_member.id
        assert appointment.date.isoformat() == TOMORROW
        assert appointment.status == int(AppointmentStatus.PENDING)
        assert appointment.price == Decimal('50.00')

    def test_client_books_with_preferred_staff(self, client_client, session, company1, service,
                                               staff_member, client_user, owner):
        """Non-owners pick preferred staff; two picks are stored as preferences."""
        second = CompanyStaff(company_id=company1.id, user_id=owner.id, status='Active')
        session.add(second)
        session.commit()

        client_client.post('/api/appointments/wizard', json={'date': TOMORROW, 'time': '10:30'})
        _next(client_client)
        client_client.patch('/api/appointments/wizard', json={'serviceId': service.id})
        _next(client_client)

        response = client_client.patch('/api/appointments/wizard', json={'staffId': staff_member.id})
        assert response.status_code == 400

        client_client.patch('/api/appointments/wizard', json={'preferredStaffIds': [staff_member.id, second.id]})
        _next(client_client)
        _next(client_client)
        client_client.patch('/api/appointments/wizard', json={'clientId': client_user.id, 'notes': 'Window seat'})
        _next(client_client)
        _next(client_client)
        payload = _next(client_client).get_json()['data']

        assert payload['preferredStaffIds'] == [staff_member.id, second.id]
        assert 'staffId' not in payload
        assert payload['notes'] == 'Window seat'

        appointment = session.query(Appointment).filter_by(company_id=company1.id).one()
        assert appointment.staff_id is None
        assert appointment.preferred_staff_ids == [staff_member.id, second.id]


class TestCreateAppointment:
    """Persistence of submitted payloads."""

    def _payload(self, company, service, client_user, **extra):
        payload = {
            'companyId': company.id,
            'clientId': client_user.id,
            'serviceId': service.id,
            'date': TOMORROW,
            'time': '9:00 AM',
            'duration': 30,
            'status': 'Pending',
            'price': '50',
            'paymentStatus': 'Pending',
        }
        payload.update(extra)
        return payload

    def test_registers_new_client(self, session, company1, service, owner2):
        """A user booking for the first time joins the company's client list."""
        appointment = appointment_service.create_appointment(session, self._payload(company1, service, owner2))

        assert appointment.time == '09:00'
        membership = session.query(UserCompany).filter_by(user_id=owner2.id, company_id=company1.id).one()
        assert membership.role == 'CLIENT'
        assert membership.source == 'appointment'

    def test_invalid_status(self, session, company1, service, client_user):
        """Unknown statuses are rejected before anything is stored."""
        with pytest.raises(ValidationError):
            appointment_service.create_appointment(
                session, self._payload(company1, service, client_user, status='archived')
            )

    def test_failed_event_is_logged_not_raised(self, session, company1, client_user, caplog):
        """Receivers swallow persistence errors; the sender never sees them."""
        receivers = publish_event(APPOINTMENT_REQUESTED, {'companyId': company1.id, 'clientId': client_user.id})
        assert receivers >= 1
        assert 'Could not create appointment' in caplog.text
        assert session.query(Appointment).filter_by(company_id=company1.id).count() == 0

    def test_delivery_is_logged(self, company1, caplog):
        """Every publication logs how many receivers got it."""
        caplog.set_level(logging.INFO, logger='agenda.services.events')
        receivers = publish_event(APPOINTMENT_REQUESTED, {'companyId': company1.id})
        assert f'appointment-requested delivered to {receivers} receiver(s)' in caplog.text

    def test_unknown_event_type(self):
        """Publishing an unknown event is a programming error."""
        with pytest.raises(ValueError):
            publish_event('appointment-exploded', {})


class TestAppointmentsApi:
    """Listing and status changes."""

    def _create(self, session, company, service, client_user, day_offset=1, time='09:00'):
        return appointment_service.create_appointment(session, {
            'companyId': company.id,
            'clientId': client_user.id,
            'serviceId': service.id,
            'date': (date.today() + timedelta(days=day_offset)).isoformat(),
            'time': time,
        })

    def test_list_ordered_and_filtered(self, owner_client, session, company1, service, client_user):
        """Appointments are ordered by date and time and filterable by status."""
        late = self._create(session, company1, service, client_user, day_offset=2)
        early = self._create(session, company1, service, client_user, day_offset=1, time='11:00')
        earliest = self._create(session, company1, service, client_user, day_offset=1, time='08:00')
        appointment_service.update_status(session, late.id, company1.id, 'confirmed')

        items = owner_client.get('/api/appointments').get_json()['items']
        assert [a['id'] for a in items] == [earliest.id, early.id, late.id]

        items = owner_client.get('/api/appointments?status=Confirmed').get_json()['items']
        assert [a['id'] for a in items] == [late.id]

    def test_update_status(self, owner_client, session, company1, service, client_user):
        """PATCH status accepts labels in any case."""
        appointment = self._create(session, company1, service, client_user)
        response = owner_client.patch(f'/api/appointments/{appointment.id}/status', json={'status': 'in-progress'})
        assert response.status_code == 200
        assert response.get_json()['data']['status'] == 'In Progress'

        response = owner_client.patch(f'/api/appointments/{appointment.id}/status', json={'status': 'later'})
        assert response.status_code == 400

    def test_update_payment(self, owner_client, session, company1, service, client_user):
        """Payment status must be one of the known values."""
        appointment = self._create(session, company1, service, client_user)
        response = owner_client.patch(f'/api/appointments/{appointment.id}/payment',
                                      json={'paymentStatus': 'Paid', 'paymentMethod': 'cash'})
        assert response.get_json()['data']['paymentStatus'] == 'Paid'
        assert owner_client.patch(f'/api/appointments/{appointment.id}/payment',
                                  json={'paymentStatus': 'Maybe'}).status_code == 400

    def test_clients_only_see_their_appointments(self, client_client, session, company1, service,
                                                 client_user, owner):
        """A client listing appointments gets only their own."""
        mine = self._create(session, company1, service, client_user)
        theirs = self._create(session, company1, service, owner)

        items = client_client.get('/api/appointments').get_json()['items']
        assert [a['id'] for a in items] == [mine.id]
        assert client_client.get(f'/api/appointments/{theirs.id}').status_code == 404
        assert client_client.patch(f'/api/appointments/{mine.id}/status',
                                   json={'status': 'Cancelled'}).status_code == 403
