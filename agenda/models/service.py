"""Company service model (bookable services)."""
from sqlalchemy import Column, BigInteger, String, Integer, Numeric, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from agenda.database import Base, BigIntPK


class CompanyService(Base):
    """A service a company offers, with price and duration in minutes."""

    __tablename__ = 'company_service'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    duration = Column(Integer, nullable=False, default=30, server_default='30')
    price = Column(Numeric(10, 2), nullable=False, default=0, server_default='0.00')
    status = Column(String(20), nullable=False, default='Active', server_default='Active')
    image_url = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    company = relationship('Company')

    def __repr__(self):
        return f"<CompanyService(id={self.id}, name='{self.name}', price={self.price})>"
