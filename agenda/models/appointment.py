"""Appointment model."""
import enum
from typing import Optional

from sqlalchemy import Column, BigInteger, String, Integer, Numeric, Text, Date, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship, deferred
from sqlalchemy.sql import func
from agenda.database import Base, BigIntPK


class AppointmentStatus(enum.IntEnum):
    """Appointment status, stored as a number."""
    PENDING = 0
    CONFIRMED = 1
    IN_PROGRESS = 2
    COMPLETED = 3
    CANCELLED = 4
    NO_SHOW = 5

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]


STATUS_LABELS = {
    AppointmentStatus.PENDING: 'Pending',
    AppointmentStatus.CONFIRMED: 'Confirmed',
    AppointmentStatus.IN_PROGRESS: 'In Progress',
    AppointmentStatus.COMPLETED: 'Completed',
    AppointmentStatus.CANCELLED: 'Cancelled',
    AppointmentStatus.NO_SHOW: 'No Show',
}


class PaymentStatus(str, enum.Enum):
    """Payment status of an appointment."""
    PENDING = 'Pending'
    PAID = 'Paid'
    PARTIALLY_PAID = 'Partially Paid'
    REFUNDED = 'Refunded'


def normalize_status(value) -> Optional[AppointmentStatus]:
    """
    Normalize an appointment status given as enum, number or label.

    Accepts 'Pending', 'in progress', 'in-progress', 'no_show', '3', 3...
    Returns None when the value is not a known status.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, AppointmentStatus):
        return value

    if isinstance(value, int):
        try:
            return AppointmentStatus(value)
        except ValueError:
            return None

    key = str(value).strip().lower().replace('-', ' ').replace('_', ' ')
    if key.isdigit():
        return normalize_status(int(key))

    compact = key.replace(' ', '')
    for status, label in STATUS_LABELS.items():
        if label.lower().replace(' ', '') == compact:
            return status
    if compact == 'canceled':
        return AppointmentStatus.CANCELLED
    return None


class Appointment(Base):
    """Appointment booked for a client at a company."""

    __tablename__ = 'company_appointment'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    client_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False, index=True)
    service_id = Column(BigInteger, ForeignKey('company_service.id'), nullable=True)
    staff_id = Column(BigInteger, ForeignKey('company_staff.id'), nullable=True)
    space_id = Column(BigInteger, ForeignKey('company_space.id'), nullable=True)
    sale_id = Column(BigInteger, ForeignKey('company_sale.id'), nullable=True)

    date = Column(Date, nullable=False, index=True)
    time = Column(String(5), nullable=False)  # HH:MM
    duration = Column(Integer, nullable=False, default=30)
    status = Column(Integer, nullable=False, default=int(AppointmentStatus.PENDING))
    price = Column(Numeric(10, 2), nullable=False, default=0)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    payment_method = Column(String(30), nullable=True)
    notes = Column(Text, nullable=True)
    # Added by a later migration; see SchemaCapabilities.appointment_preferred_staff
    preferred_staff_ids = deferred(Column(JSON, nullable=True))

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    company = relationship('Company')
    client = relationship('AppUser')
    service = relationship('CompanyService')
    staff = relationship('CompanyStaff')
    space = relationship('CompanySpace')
    sale = relationship('Sale', foreign_keys=[sale_id])

    @property
    def status_label(self) -> str:
        status = normalize_status(self.status)
        return status.label if status is not None else 'Unknown'

    def __repr__(self):
        return f"<Appointment(id={self.id}, date={self.date}, time='{self.time}', status={self.status})>"
