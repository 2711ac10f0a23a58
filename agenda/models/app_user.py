"""AppUser model - platform users (owners, staff and clients)."""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from agenda.database import Base, BigIntPK


class AppUser(Base):
    """AppUser model - one account per person across companies."""

    __tablename__ = 'app_user'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    avatar = Column(String(255), nullable=True)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    user_companies = relationship('UserCompany', back_populates='user')

    @property
    def full_name(self):
        """First and last name, falling back to the email."""
        name = ' '.join(part for part in (self.first_name, self.last_name) if part)
        return name or self.email

    def __repr__(self):
        return f"<AppUser(id={self.id}, email='{self.email}')>"
