"""Models package - exports all SQLAlchemy models."""
# Tenant Models
from agenda.models.currency import Currency
from agenda.models.company import Company
from agenda.models.app_user import AppUser
from agenda.models.user_company import UserCompany, UserRole, ROLE_HIERARCHY

# Catalog Models
from agenda.models.service import CompanyService
from agenda.models.product import CompanyProduct
from agenda.models.product_variant import CompanyProductVariant
from agenda.models.space import CompanySpace
from agenda.models.staff import CompanyStaff

# Booking and Sales Models
from agenda.models.appointment import Appointment, AppointmentStatus, PaymentStatus, normalize_status
from agenda.models.appointment_history import AppointmentHistory
from agenda.models.sale import Sale
from agenda.models.sale_item import SaleItem

__all__ = [
    # Tenant
    'Currency', 'Company', 'AppUser', 'UserCompany', 'UserRole', 'ROLE_HIERARCHY',
    # Catalog
    'CompanyService', 'CompanyProduct', 'CompanyProductVariant', 'CompanySpace', 'CompanyStaff',
    # Booking and Sales
    'Appointment', 'AppointmentStatus', 'PaymentStatus', 'normalize_status', 'AppointmentHistory',
    'Sale', 'SaleItem',
]
