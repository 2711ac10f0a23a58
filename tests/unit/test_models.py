"""
Unit tests for SQLAlchemy models.
"""

import pytest
import uuid
from datetime import date
from decimal import Decimal

from agenda.models import (
    AppUser, Appointment, AppointmentStatus, Company, Sale, SaleItem, UserCompany, normalize_status
)


class TestAppointmentStatus:
    """Status codes and their labels."""

    @pytest.mark.parametrize('value, expected', [
        ('Pending', AppointmentStatus.PENDING),
        ('in progress', AppointmentStatus.IN_PROGRESS),
        ('in-progress', AppointmentStatus.IN_PROGRESS),
        ('IN_PROGRESS', AppointmentStatus.IN_PROGRESS),
        ('no_show', AppointmentStatus.NO_SHOW),
        ('canceled', AppointmentStatus.CANCELLED),
        ('3', AppointmentStatus.COMPLETED),
        (1, AppointmentStatus.CONFIRMED),
        (AppointmentStatus.CANCELLED, AppointmentStatus.CANCELLED),
    ])
    def test_normalize_status(self, value, expected):
        """Labels, snake/kebab case and numbers all normalize."""
        assert normalize_status(value) is expected

    @pytest.mark.parametrize('value', [None, True, 9, '-1', 'archived'])
    def test_unknown_status(self, value):
        """Unknown values give None."""
        assert normalize_status(value) is None

    def test_labels(self):
        """Each code has a display label."""
        assert AppointmentStatus.IN_PROGRESS.label == 'In Progress'
        assert Appointment(status=5).status_label == 'No Show'
        assert Appointment(status=42).status_label == 'Unknown'


class TestAppUserModel:
    """Tests for AppUser model."""

    def test_full_name(self):
        """First and last name are joined; email is the fallback."""
        assert AppUser(email='a@test.com', first_name='Ana', last_name='Ruiz').full_name == 'Ana Ruiz'
        assert AppUser(email='a@test.com').full_name == 'a@test.com'

    def test_create_user(self, session):
        """Test creating a user."""
        suffix = str(uuid.uuid4())[:8]
        user = AppUser(email=f'test_{suffix}@example.com', first_name='Test', active=True)
        session.add(user)
        session.commit()

        assert user.id is not None
        assert user.created_at is not None

    def test_email_unique(self, session, owner):
        """Two accounts cannot share an email."""
        session.add(AppUser(email=owner.email))
        with pytest.raises(Exception):  # IntegrityError
            session.commit()
        session.rollback()


class TestUserCompanyModel:
    """Tests for UserCompany memberships."""

    def test_is_owner(self):
        """Only the OWNER role owns the company."""
        assert UserCompany(role='OWNER').is_owner()
        assert not UserCompany(role='STAFF').is_owner()

    def test_membership_unique(self, session, owner, company1):
        """A user has one membership per company."""
        session.add(UserCompany(user_id=owner.id, company_id=company1.id, role='CLIENT'))
        with pytest.raises(Exception):  # IntegrityError
            session.commit()
        session.rollback()


class TestSaleItemModel:
    """Line arithmetic of stored sale items."""

    def test_line_total(self):
        """quantity * unit_price minus the percent discount."""
        item = SaleItem(item_type='product', quantity=Decimal('2'), unit_price=Decimal('12.50'),
                        discount=Decimal('10'))
        assert item.line_subtotal == Decimal('25.00')
        assert item.line_discount == Decimal('2.5')
        assert item.line_total == Decimal('22.5')

    def test_sale_items_cascade(self, session, company1, client_user):
        """Deleting a sale deletes its items."""
        sale = Sale(company_id=company1.id, user_id=client_user.id, total_amount=Decimal('10'))
        sale.items = [SaleItem(item_type='service', name='Cut', quantity=1, unit_price=Decimal('10'))]
        session.add(sale)
        session.commit()
        item_id = sale.items[0].id

        session.delete(sale)
        session.commit()

        assert session.query(SaleItem).filter_by(id=item_id).first() is None


class TestAppointmentModel:
    """Tests for Appointment persistence."""

    def test_create_appointment(self, session, company1, client_user, service):
        """Defaults fill status, payment status and duration."""
        appointment = Appointment(
            company_id=company1.id,
            client_id=client_user.id,
            service_id=service.id,
            date=date(2030, 1, 2),
            time='09:00',
            price=Decimal('50.00'),
        )
        session.add(appointment)
        session.commit()

        assert appointment.status == int(AppointmentStatus.PENDING)
        assert appointment.payment_status == 'Pending'
        assert appointment.duration == 30
        assert appointment.sale_id is None

    def test_company_slug_unique(self, session, company1):
        """Company slugs are unique."""
        session.add(Company(slug=company1.slug, name='Duplicate'))
        with pytest.raises(Exception):  # IntegrityError
            session.commit()
        session.rollback()
