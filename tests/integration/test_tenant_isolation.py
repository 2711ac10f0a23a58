"""
Critical integration tests for company isolation.
These tests ensure that data is properly isolated between companies.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from agenda.exceptions import NotFoundError
from agenda.models import CompanyService, Sale, UserCompany
from agenda.services import appointment_service, catalog_service


class TestCatalogIsolation:
    """Catalog reads are scoped to the current company."""

    def test_services_are_isolated(self, owner_client, service, service2):
        """Each company only lists its own services."""
        names = [s['name'] for s in owner_client.get('/api/catalog/services').get_json()['items']]
        assert names == ['Haircut']

    def test_other_company_sees_its_own(self, owner2_client, service, service2):
        """The second company lists only its own services."""
        names = [s['name'] for s in owner2_client.get('/api/catalog/services').get_json()['items']]
        assert names == ['Massage']

    def test_cannot_read_foreign_service(self, owner2_client, service):
        """A service id from another company is a 404."""
        assert owner2_client.get(f'/api/catalog/services/{service.id}').status_code == 404

    def test_cannot_update_foreign_service(self, owner2_client, session, service):
        """Updates through another company leave the service untouched."""
        response = owner2_client.put(f'/api/catalog/services/{service.id}', json={'price': 1})
        assert response.status_code == 404
        session.expire_all()
        assert session.query(CompanyService).filter_by(id=service.id).one().price == Decimal('50.00')

    def test_foreign_product_variants(self, owner2_client, serum):
        """Variants of another company's product are not visible."""
        assert owner2_client.get(f'/api/catalog/products/{serum.id}/variants').status_code == 404

    def test_staff_and_space_lookups(self, session, company2, staff_member, space):
        """Direct lookups are company scoped too."""
        with pytest.raises(NotFoundError):
            catalog_service.get_staff(session, staff_member.id, company2.id)
        with pytest.raises(NotFoundError):
            catalog_service.get_space(session, space.id, company2.id)


class TestBookingIsolation:
    """Appointments and billing never cross companies."""

    def test_payload_with_foreign_staff_rejected(self, session, company2, service2, staff_member, owner2):
        """A staff member of another company cannot be booked."""
        with pytest.raises(NotFoundError):
            appointment_service.create_appointment(session, {
                'companyId': company2.id,
                'clientId': owner2.id,
                'serviceId': service2.id,
                'staffId': staff_member.id,
                'date': (date.today() + timedelta(days=1)).isoformat(),
                'time': '09:00',
            })

    def test_cannot_bill_foreign_appointment(self, owner2_client, session, company1, service, client_user):
        """Opening billing on another company's appointment is a 404."""
        appointment = appointment_service.create_appointment(session, {
            'companyId': company1.id,
            'clientId': client_user.id,
            'serviceId': service.id,
            'date': (date.today() + timedelta(days=1)).isoformat(),
            'time': '09:00',
        })
        assert owner2_client.post(f'/api/appointments/{appointment.id}/billing').status_code == 404
        assert owner2_client.get(f'/api/appointments/{appointment.id}').status_code == 404

    def test_wizard_drafts_are_per_company(self, client, owner, session, company1, company2):
        """A user in two companies keeps a separate draft for each."""
        session.add(UserCompany(user_id=owner.id, company_id=company2.id, role='OWNER', active=True))
        session.commit()

        with client.session_transaction() as sess:
            sess['user_id'] = owner.id
            sess['company_id'] = company1.id
        client.post('/api/appointments/wizard', json={'notes': 'company one'})

        with client.session_transaction() as sess:
            sess['company_id'] = company2.id
        assert client.get('/api/appointments/wizard').status_code == 404


class TestSaleIsolation:
    """Sales are isolated by company."""

    def test_sales_are_isolated(self, owner2_client, session, company1, company2, client_user, owner2):
        """Each company only lists and opens its own sales."""
        sale1 = Sale(company_id=company1.id, user_id=client_user.id, total_amount=Decimal('10'))
        sale2 = Sale(company_id=company2.id, user_id=owner2.id, total_amount=Decimal('20'))
        session.add_all([sale1, sale2])
        session.commit()

        assert owner2_client.get(f'/api/sales/{sale1.id}').status_code == 404
        items = owner2_client.get('/api/sales').get_json()['items']
        assert [s['id'] for s in items] == [sale2.id]

    def test_cannot_delete_foreign_sale(self, owner2_client, session, company1, client_user):
        """Deleting another company's sale is a 404 and keeps it."""
        sale = Sale(company_id=company1.id, user_id=client_user.id, total_amount=Decimal('10'))
        session.add(sale)
        session.commit()

        assert owner2_client.delete(f'/api/sales/{sale.id}').status_code == 404
        assert session.query(Sale).filter_by(id=sale.id).first() is not None
