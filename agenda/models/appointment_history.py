"""Appointment history model."""
from sqlalchemy import Column, BigInteger, String, Numeric, Text, Date, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from agenda.database import Base, BigIntPK


class AppointmentHistory(Base):
    """Snapshot taken when an appointment is closed through the billing dialog.

    Names and prices are copied, so rows stay readable after the appointment
    or the catalog entries they mention are changed or deleted.
    """

    __tablename__ = 'company_appointment_history'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False, index=True)  # client
    # Plain ids, not foreign keys: the referenced rows may be gone
    appointment_id = Column(BigInteger, nullable=True, index=True)
    sale_id = Column(BigInteger, nullable=True)
    service_id = Column(BigInteger, nullable=True, index=True)
    staff_id = Column(BigInteger, nullable=True, index=True)
    space_id = Column(BigInteger, nullable=True)

    service_name = Column(String(200), nullable=True)
    service_price = Column(Numeric(10, 2), nullable=True)
    staff_name = Column(String(255), nullable=True)
    space_name = Column(String(200), nullable=True)
    appointment_date = Column(Date, nullable=False, index=True)
    appointment_time = Column(String(5), nullable=False)

    completion_status = Column(String(30), nullable=False)  # billing dialog status
    completion_notes = Column(Text, nullable=True)
    services_used = Column(JSON, nullable=True)
    products_used = Column(JSON, nullable=True)
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    user = relationship('AppUser')

    def __repr__(self):
        return (f"<AppointmentHistory(id={self.id}, appointment_id={self.appointment_id}, "
                f"status='{self.completion_status}')>")
