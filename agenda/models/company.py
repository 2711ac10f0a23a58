"""Company model - the tenant boundary; all catalog data belongs to one company."""
from sqlalchemy import Column, BigInteger, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from agenda.database import Base, BigIntPK


class Company(Base):
    """Company model - each business using the platform."""

    __tablename__ = 'company'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    slug = Column(String(80), nullable=False, unique=True)  # URL-safe identifier
    name = Column(String(200), nullable=False)  # Display name
    currency_id = Column(BigInteger, ForeignKey('currency.id'), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    currency = relationship('Currency')
    user_companies = relationship('UserCompany', back_populates='company')

    def __repr__(self):
        return f"<Company(id={self.id}, slug='{self.slug}', name='{self.name}')>"
