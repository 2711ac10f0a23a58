"""UserCompany model - links users to companies with a role."""
import enum
from sqlalchemy import Column, BigInteger, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from agenda.database import Base, BigIntPK


class UserRole(enum.Enum):
    """User roles within a company."""
    OWNER = 'OWNER'
    STAFF = 'STAFF'
    CLIENT = 'CLIENT'


# Higher level grants everything below it
ROLE_HIERARCHY = {'OWNER': 3, 'STAFF': 2, 'CLIENT': 1}


class UserCompany(Base):
    """UserCompany model - membership of a user in a company.

    Clients are registered here with role CLIENT the first time they book,
    which is how a company's client list is built.
    """

    __tablename__ = 'user_company'
    __table_args__ = (UniqueConstraint('user_id', 'company_id', name='uq_user_company'),)

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    role = Column(String(20), nullable=False, default='CLIENT')  # OWNER, STAFF, CLIENT
    source = Column(String(30), nullable=True)  # how a client got here, e.g. 'appointment'
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    user = relationship('AppUser', back_populates='user_companies')
    company = relationship('Company', back_populates='user_companies')

    def __repr__(self):
        return f"<UserCompany(user_id={self.user_id}, company_id={self.company_id}, role='{self.role}')>"

    def is_owner(self):
        """Check if user owns the company."""
        return self.role == UserRole.OWNER.value
