"""Company staff model."""
from sqlalchemy import Column, BigInteger, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from agenda.database import Base, BigIntPK


class CompanyStaff(Base):
    """Staff member of a company; personal data comes from the linked user."""

    __tablename__ = 'company_staff'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False)
    position = Column(String(100), nullable=True)
    bio = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default='Active', server_default='Active')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    company = relationship('Company')
    user = relationship('AppUser')

    @property
    def name(self):
        return self.user.full_name if self.user else ''

    def __repr__(self):
        return f"<CompanyStaff(id={self.id}, company_id={self.company_id}, user_id={self.user_id})>"
