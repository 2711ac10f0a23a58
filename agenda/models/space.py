"""Company space model (rooms, chairs, cabins)."""
from sqlalchemy import Column, BigInteger, String, Integer, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship, deferred
from sqlalchemy.sql import func
from agenda.database import Base, BigIntPK


class CompanySpace(Base):
    """Physical space where an appointment can take place."""

    __tablename__ = 'company_space'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    capacity = Column(Integer, nullable=False, default=1, server_default='1')
    status = Column(String(20), nullable=False, default='Active', server_default='Active')
    image_url = Column(String(255), nullable=True)
    # Added by a later migration; see SchemaCapabilities.space_gallery_images
    gallery_images = deferred(Column(JSON, nullable=True))
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    company = relationship('Company')

    def __repr__(self):
        return f"<CompanySpace(id={self.id}, name='{self.name}')>"
