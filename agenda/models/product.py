"""Company product model."""
from sqlalchemy import Column, BigInteger, String, Boolean, Numeric, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from agenda.database import Base, BigIntPK


class CompanyProduct(Base):
    """Product sold or used by a company.

    Prices normally live on the variants; ``base_price`` covers products
    billed without any variant.
    """

    __tablename__ = 'company_product'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    base_price = Column(Numeric(10, 2), nullable=True)
    unit = Column(String(20), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    image_url = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    company = relationship('Company')
    variants = relationship(
        'CompanyProductVariant',
        back_populates='product',
        cascade='all, delete-orphan',
        order_by='CompanyProductVariant.id'
    )

    def __repr__(self):
        return f"<CompanyProduct(id={self.id}, name='{self.name}')>"
