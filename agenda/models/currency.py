"""Currency model - display formatting descriptor for company prices."""
from sqlalchemy import Column, String, Boolean, Integer, Numeric, DateTime
from sqlalchemy.sql import func
from agenda.database import Base, BigIntPK


class Currency(Base):
    """Currency (symbol, decimal count, rounding increment)."""

    __tablename__ = 'currency'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(10), nullable=False, unique=True)  # ISO code, e.g. USD
    symbol = Column(String(10), nullable=False)
    decimals = Column(Integer, nullable=False, default=2, server_default='2')
    rounding = Column(Numeric(10, 4), nullable=False, default=0.01, server_default='0.01')
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<Currency(id={self.id}, name='{self.name}', symbol='{self.symbol}')>"
