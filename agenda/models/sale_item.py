"""Sale Item model."""
from decimal import Decimal

from sqlalchemy import Column, BigInteger, String, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from agenda.database import Base, BigIntPK


class SaleItem(Base):
    """Sale Item - historical record of one billed line."""

    __tablename__ = 'company_sale_item'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    sale_id = Column(BigInteger, ForeignKey('company_sale.id', ondelete='CASCADE'), nullable=False, index=True)
    item_type = Column(String(10), nullable=False)  # 'service' or 'product'
    service_id = Column(BigInteger, ForeignKey('company_service.id'), nullable=True)
    product_id = Column(BigInteger, ForeignKey('company_product.id'), nullable=True)
    variant_id = Column(BigInteger, ForeignKey('company_product_variant.id'), nullable=True)
    name = Column(String(255), nullable=True)
    unit = Column(String(20), nullable=True)
    quantity = Column(Numeric(12, 3), nullable=False, default=1)
    # Per-unit price; volume variants store the per-ml (etc.) figure
    unit_price = Column(Numeric(14, 6), nullable=False, default=0)
    discount = Column(Numeric(5, 2), nullable=False, default=0)  # percent

    # Relationships
    sale = relationship('Sale', back_populates='items')
    service = relationship('CompanyService')
    product = relationship('CompanyProduct')
    variant = relationship('CompanyProductVariant')

    @property
    def line_subtotal(self) -> Decimal:
        return Decimal(self.quantity or 0) * Decimal(self.unit_price or 0)

    @property
    def line_discount(self) -> Decimal:
        return self.line_subtotal * Decimal(self.discount or 0) / Decimal('100')

    @property
    def line_total(self) -> Decimal:
        return self.line_subtotal - self.line_discount

    def __repr__(self):
        return f"<SaleItem(id={self.id}, sale_id={self.sale_id}, item_type='{self.item_type}')>"
