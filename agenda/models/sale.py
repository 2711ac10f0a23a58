"""Sale model."""
from sqlalchemy import Column, BigInteger, Numeric, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from agenda.database import Base, BigIntPK


class Sale(Base):
    """Sale produced when an appointment is billed."""

    __tablename__ = 'company_sale'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False)  # customer
    staff_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)  # user who billed
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    company = relationship('Company')
    customer = relationship('AppUser', foreign_keys=[user_id])
    staff = relationship('AppUser', foreign_keys=[staff_id])
    items = relationship('SaleItem', back_populates='sale', cascade='all, delete-orphan', order_by='SaleItem.id')

    def __repr__(self):
        return f"<Sale(id={self.id}, total_amount={self.total_amount})>"
