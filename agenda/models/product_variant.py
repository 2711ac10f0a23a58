"""Company product variant model (size/color/volume configurations)."""
from sqlalchemy import Column, BigInteger, String, Boolean, Numeric, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from agenda.database import Base, BigIntPK


class CompanyProductVariant(Base):
    """Sellable configuration of a product with its own price and stock.

    ``attributes`` holds the variant-defining values, e.g.
    ``{"volume": "30ml", "color": "red"}``.
    """

    __tablename__ = 'company_product_variant'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    product_id = Column(BigInteger, ForeignKey('company_product.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    sku = Column(String(100), nullable=True)
    type = Column(String(20), nullable=False, default='sell')  # sell, service, both
    attributes = Column(JSON, nullable=True)
    sell_price = Column(Numeric(10, 2), nullable=True)
    cost_price = Column(Numeric(10, 2), nullable=True)
    current_stock = Column(Numeric(12, 3), nullable=False, default=0, server_default='0')
    stock_unit = Column(String(20), nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    product = relationship('CompanyProduct', back_populates='variants')

    def __repr__(self):
        return f"<CompanyProductVariant(id={self.id}, product_id={self.product_id}, name='{self.name}')>"
