"""
Integration tests for the sales API.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from agenda.models import Appointment, AppUser, CompanyProductVariant, Sale, SaleItem, UserCompany
from agenda.services import appointment_service, sale_service


@pytest.fixture
def billed(session, company1, service, shampoo, client_user, staff_user):
    """Appointment completed with a haircut and a shampoo (total 70.00)."""
    appointment = appointment_service.create_appointment(session, {
        'companyId': company1.id,
        'clientId': client_user.id,
        'serviceId': service.id,
        'date': (date.today() + timedelta(days=1)).isoformat(),
        'time': '15:00',
    })
    variant = shampoo.variants[0]
    appointment, sale = appointment_service.complete_appointment(session, appointment.id, company1.id, {
        'status': 'completed',
        'notes': 'Regular',
        'billingItems': [
            {'id': 'service-1', 'type': 'service', 'serviceId': service.id, 'name': 'Haircut',
             'quantity': 1, 'unitPrice': '50'},
            {'id': 'product-1', 'type': 'product', 'productId': shampoo.id, 'variantId': variant.id,
             'name': 'Shampoo - Regular', 'quantity': 1, 'unitPrice': '20'},
        ],
    }, staff_user_id=staff_user.id)
    return appointment, sale


class TestSalesList:
    """Sales listing."""

    def test_list(self, owner_client, billed):
        """Sales carry the formatted total in the company currency."""
        _, sale = billed
        items = owner_client.get('/api/sales').get_json()['items']
        assert [s['id'] for s in items] == [sale.id]
        assert items[0]['totalAmount'] == '70.00'
        assert items[0]['totalFormatted'] == '€ 70.00'
        assert items[0]['customerName'] == 'Carla Test'

    def test_clients_see_only_their_sales(self, client_client, billed, session, company1, owner):
        """A client listing sales only gets their own."""
        other = Sale(company_id=company1.id, user_id=owner.id, total_amount=Decimal('5'))
        session.add(other)
        session.commit()

        items = client_client.get('/api/sales').get_json()['items']
        assert [s['id'] for s in items] == [billed[1].id]

    def test_clients_cannot_ask_for_other_users(self, client_client, owner):
        """Filtering by another user is forbidden for clients."""
        response = client_client.get(f'/api/sales?userId={owner.id}')
        assert response.status_code == 403
        assert response.get_json()['message'] == 'Clients can only list their own sales'


class TestSaleDetail:
    """Sale detail with line totals."""

    def test_detail(self, owner_client, billed):
        """Lines, line totals and the originating appointment are returned."""
        appointment, sale = billed
        data = owner_client.get(f'/api/sales/{sale.id}').get_json()['data']
        assert data['appointmentId'] == appointment.id
        assert data['subtotalFormatted'] == '€ 70.00'
        assert data['discountFormatted'] == '€ 0.00'
        assert [(i['name'], i['lineTotal']) for i in data['items']] == [
            ('Haircut', '50.00'), ('Shampoo - Regular', '20.00')
        ]
        assert data['notes'] == 'Regular'

    def test_clients_cannot_open_detail(self, client_client, billed):
        """The detail view is for staff and owners."""
        assert client_client.get(f'/api/sales/{billed[1].id}').status_code == 403

    def test_unknown_sale(self, owner_client):
        """Unknown sales are a 404."""
        assert owner_client.get('/api/sales/999999').status_code == 404


class TestSaleEdits:
    """Owner edits of a stored sale."""

    def test_delete_item_recomputes_totals(self, owner_client, billed, session):
        """Removing a line lowers the stored totals."""
        _, sale = billed
        product_line = next(i for i in sale.items if i.item_type == 'product')

        response = owner_client.delete(f'/api/sales/{sale.id}/items/{product_line.id}')

        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['totalAmount'] == '50.00'
        assert len(data['items']) == 1
        assert session.query(SaleItem).filter_by(id=product_line.id).first() is None

    def test_staff_cannot_delete(self, staff_client, billed):
        """Deletes are owner only."""
        _, sale = billed
        assert staff_client.delete(f'/api/sales/{sale.id}').status_code == 403

    def test_delete_sale_unlinks_appointment(self, owner_client, billed, session):
        """The billed appointment keeps its status but loses the sale link."""
        appointment, sale = billed
        sale_id = sale.id
        assert owner_client.delete(f'/api/sales/{sale_id}').status_code == 200

        session.expire_all()
        assert session.query(Sale).filter_by(id=sale_id).first() is None
        assert session.query(Appointment).filter_by(id=appointment.id).one().sale_id is None

    def test_recalculate_totals(self):
        """Totals are rebuilt from the lines."""
        sale = Sale(items=[
            SaleItem(item_type='service', quantity=Decimal('1'), unit_price=Decimal('40'), discount=Decimal('25')),
            SaleItem(item_type='product', quantity=Decimal('2'), unit_price=Decimal('2.50'), discount=Decimal('0')),
        ])
        sale_service.recalculate_totals(sale)
        assert sale.subtotal == Decimal('45.00')
        assert sale.discount_amount == Decimal('10.00')
        assert sale.total_amount == Decimal('35.00')


def _pos_items(service, shampoo, quantity=2):
    return [
        {'type': 'service', 'serviceId': service.id, 'name': 'Haircut', 'quantity': 1,
         'unitPrice': '50', 'discount': 10},
        {'type': 'product', 'productId': shampoo.id, 'variantId': shampoo.variants[0].id,
         'name': 'Shampoo - Regular', 'quantity': quantity, 'unitPrice': '20'},
    ]


class TestPointOfSale:
    """Direct sales without an appointment."""

    def test_staff_creates_sale(self, staff_client, session, client_user, staff_user, service, shampoo):
        """The sale is stored with computed totals and takes stock off the variant."""
        response = staff_client.post('/api/sales', json={
            'clientId': client_user.id,
            'items': _pos_items(service, shampoo),
            'notes': 'Walk-in',
            'totalAmount': '85.00',
        })

        assert response.status_code == 201
        body = response.get_json()
        assert body['message'] == 'Sale created successfully'
        data = body['data']
        assert data['subtotal'] == '90.00'
        assert data['discountAmount'] == '5.00'
        assert data['totalAmount'] == '85.00'
        assert data['totalFormatted'] == '€ 85.00'
        assert data['staffId'] == staff_user.id
        assert data['userId'] == client_user.id
        assert data['appointmentId'] is None
        assert data['notes'] == 'Walk-in'
        assert [i['name'] for i in data['items']] == ['Haircut', 'Shampoo - Regular']

        session.expire_all()
        variant = session.query(CompanyProductVariant).filter_by(id=shampoo.variants[0].id).one()
        assert variant.current_stock == Decimal('8')

    def test_sent_total_is_not_trusted(self, staff_client, client_user, service, shampoo):
        """A wrong client total does not change the stored one."""
        response = staff_client.post('/api/sales', json={
            'clientId': client_user.id, 'items': _pos_items(service, shampoo), 'totalAmount': '1.00',
        })
        assert response.get_json()['data']['totalAmount'] == '85.00'

    def test_new_customer_joins_client_list(self, staff_client, session, company1, service, shampoo):
        """Selling to a user outside the company registers them as a client."""
        walk_in = AppUser(email=f'walk-in-{company1.id}@test.com', first_name='Wes', last_name='Test', active=True)
        session.add(walk_in)
        session.commit()

        response = staff_client.post('/api/sales', json={'clientId': walk_in.id, 'items': _pos_items(service, shampoo)})

        assert response.status_code == 201
        membership = session.query(UserCompany).filter_by(user_id=walk_in.id, company_id=company1.id).one()
        assert membership.role == 'CLIENT'
        assert membership.source == 'sale'

    @pytest.mark.parametrize('body, status_code', [
        ({'items': []}, 400),
        ({'clientId': 'CLIENT'}, 400),
        ({'clientId': 'CLIENT', 'items': []}, 400),
        ({'clientId': 'CLIENT', 'items': 'haircut'}, 400),
        ({'clientId': 'CLIENT', 'items': [{'type': 'gift', 'name': 'Card', 'unitPrice': '5'}]}, 400),
        ({'clientId': 'abc', 'items': [{'type': 'service', 'name': 'Cut', 'unitPrice': '5'}]}, 400),
        ({'clientId': 999999, 'items': [{'type': 'service', 'name': 'Cut', 'unitPrice': '5'}]}, 404),
    ])
    def test_invalid_sale(self, staff_client, session, company1, client_user, body, status_code):
        """Missing or malformed client, empty or malformed items are rejected and nothing is stored."""
        if body.get('clientId') == 'CLIENT':
            body = dict(body, clientId=client_user.id)
        response = staff_client.post('/api/sales', json=body)
        assert response.status_code == status_code
        assert response.get_json()['status'] == 'error'
        assert session.query(Sale).filter_by(company_id=company1.id).count() == 0

    def test_unknown_variant_leaves_stock(self, staff_client, session, company1, client_user, service, shampoo):
        """One bad line rejects the whole sale before any stock moves."""
        items = _pos_items(service, shampoo) + [
            {'type': 'product', 'variantId': 999999, 'name': 'Ghost', 'unitPrice': '1'}
        ]
        response = staff_client.post('/api/sales', json={'clientId': client_user.id, 'items': items})

        assert response.status_code == 404
        session.expire_all()
        assert session.query(Sale).filter_by(company_id=company1.id).count() == 0
        variant = session.query(CompanyProductVariant).filter_by(id=shampoo.variants[0].id).one()
        assert variant.current_stock == Decimal('10')

    def test_other_company_service_rejected(self, staff_client, client_user, service2):
        """Lines must reference the caller's company."""
        response = staff_client.post('/api/sales', json={
            'clientId': client_user.id,
            'items': [{'type': 'service', 'serviceId': service2.id, 'name': 'Massage', 'unitPrice': '80'}],
        })
        assert response.status_code == 404

    def test_clients_cannot_sell(self, client_client, client_user, service, shampoo):
        """Creating sales needs STAFF or higher."""
        response = client_client.post('/api/sales', json={'clientId': client_user.id,
                                                           'items': _pos_items(service, shampoo)})
        assert response.status_code == 403
