"""
Catalog records handed to the booking wizard and the billing dialog.

Rows coming from the database (or JSON from a client) are converted once at
the boundary; prices are always Decimal past this point.
"""
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from agenda.exceptions import ValidationError


def to_decimal(value: Any, field_name: str = 'value') -> Decimal:
    """
    Convert a price or quantity to Decimal.

    None and empty strings become 0. Floats go through str() so 0.1 stays 0.1.

    Raises:
        ValidationError: if the value is not numeric
    """
    if value is None or value == '':
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationError(f'{field_name} must be a number')
    try:
        num = Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f'{field_name} must be a number')
    if not num.is_finite():
        raise ValidationError(f'{field_name} must be a number')
    return num


def _optional_decimal(value: Any, field_name: str) -> Optional[Decimal]:
    if value is None or value == '':
        return None
    return to_decimal(value, field_name)


@dataclass
class VariantRecord:
    id: int
    product_id: int
    name: str
    sku: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    sell_price: Optional[Decimal] = None
    cost_price: Optional[Decimal] = None
    current_stock: Decimal = Decimal('0')
    stock_unit: Optional[str] = None
    is_default: bool = False
    is_active: bool = True

    @property
    def price(self) -> Decimal:
        """Sell price, falling back to cost price."""
        if self.sell_price is not None and self.sell_price > 0:
            return self.sell_price
        return self.cost_price or Decimal('0')

    @property
    def volume(self) -> Optional[str]:
        value = (self.attributes or {}).get('volume')
        return str(value) if value not in (None, '') else None

    def is_usable(self) -> bool:
        """Active with a positive price."""
        return bool(self.is_active) and self.price > 0

    @classmethod
    def from_model(cls, variant) -> 'VariantRecord':
        return cls(
            id=variant.id,
            product_id=variant.product_id,
            name=variant.name,
            sku=variant.sku,
            attributes=dict(variant.attributes or {}),
            sell_price=_optional_decimal(variant.sell_price, 'sell_price'),
            cost_price=_optional_decimal(variant.cost_price, 'cost_price'),
            current_stock=to_decimal(variant.current_stock, 'current_stock'),
            stock_unit=variant.stock_unit,
            is_default=bool(variant.is_default),
            is_active=bool(variant.is_active),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VariantRecord':
        return cls(
            id=data['id'],
            product_id=data.get('productId', data.get('product_id')),
            name=data.get('name') or '',
            sku=data.get('sku'),
            attributes=dict(data.get('attributes') or {}),
            sell_price=_optional_decimal(data.get('sellPrice', data.get('sell_price')), 'sellPrice'),
            cost_price=_optional_decimal(data.get('costPrice', data.get('cost_price')), 'costPrice'),
            current_stock=to_decimal(data.get('currentStock', data.get('current_stock')), 'currentStock'),
            stock_unit=data.get('stockUnit', data.get('stock_unit')),
            is_default=bool(data.get('isDefault', data.get('is_default', False))),
            is_active=bool(data.get('isActive', data.get('is_active', True))),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'productId': self.product_id,
            'name': self.name,
            'sku': self.sku,
            'attributes': self.attributes,
            'sellPrice': str(self.sell_price) if self.sell_price is not None else None,
            'costPrice': str(self.cost_price) if self.cost_price is not None else None,
            'price': str(self.price),
            'currentStock': str(self.current_stock),
            'stockUnit': self.stock_unit,
            'isDefault': self.is_default,
            'isActive': self.is_active,
        }


@dataclass
class ProductRecord:
    id: int
    company_id: int
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    base_price: Decimal = Decimal('0')
    unit: Optional[str] = None
    is_active: bool = True
    image_url: Optional[str] = None
    variants: List[VariantRecord] = field(default_factory=list)

    def usable_variants(self) -> List[VariantRecord]:
        return [v for v in self.variants if v.is_usable()]

    def get_variant(self, variant_id) -> Optional[VariantRecord]:
        for variant in self.variants:
            if str(variant.id) == str(variant_id):
                return variant
        return None

    @classmethod
    def from_model(cls, product, with_variants: bool = True) -> 'ProductRecord':
        return cls(
            id=product.id,
            company_id=product.company_id,
            name=product.name,
            description=product.description,
            category=product.category,
            base_price=to_decimal(product.base_price, 'base_price'),
            unit=product.unit,
            is_active=bool(product.is_active),
            image_url=product.image_url,
            variants=[VariantRecord.from_model(v) for v in product.variants] if with_variants else [],
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProductRecord':
        return cls(
            id=data['id'],
            company_id=data.get('companyId', data.get('company_id')),
            name=data.get('name') or '',
            description=data.get('description'),
            category=data.get('category'),
            base_price=to_decimal(data.get('basePrice', data.get('base_price')), 'basePrice'),
            unit=data.get('unit'),
            is_active=bool(data.get('isActive', data.get('is_active', True))),
            image_url=data.get('imageUrl', data.get('image_url')),
            variants=[VariantRecord.from_dict(v) for v in data.get('variants') or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'companyId': self.company_id,
            'name': self.name,
            'description': self.description,
            'category': self.category,
            'basePrice': str(self.base_price),
            'unit': self.unit,
            'isActive': self.is_active,
            'imageUrl': self.image_url,
            'variantCount': len(self.variants),
        }


@dataclass
class ServiceRecord:
    id: int
    company_id: int
    name: str
    price: Decimal = Decimal('0')
    duration: int = 30
    description: Optional[str] = None
    category: Optional[str] = None
    status: str = 'Active'
    image_url: Optional[str] = None

    @classmethod
    def from_model(cls, service) -> 'ServiceRecord':
        return cls(
            id=service.id,
            company_id=service.company_id,
            name=service.name,
            price=to_decimal(service.price, 'price'),
            duration=int(service.duration or 0),
            description=service.description,
            category=service.category,
            status=service.status,
            image_url=service.image_url,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ServiceRecord':
        return cls(
            id=data['id'],
            company_id=data.get('companyId', data.get('company_id')),
            name=data.get('name') or '',
            price=to_decimal(data.get('price'), 'price'),
            duration=int(data.get('duration') or 0),
            description=data.get('description'),
            category=data.get('category'),
            status=data.get('status') or 'Active',
            image_url=data.get('imageUrl', data.get('image_url')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'companyId': self.company_id,
            'name': self.name,
            'price': str(self.price),
            'duration': self.duration,
            'description': self.description,
            'category': self.category,
            'status': self.status,
            'imageUrl': self.image_url,
        }


@dataclass
class SpaceRecord:
    id: int
    company_id: int
    name: str
    description: Optional[str] = None
    capacity: int = 1
    status: str = 'Active'
    image_url: Optional[str] = None
    gallery_images: Optional[List[str]] = None

    @classmethod
    def from_model(cls, space, with_gallery: bool = False) -> 'SpaceRecord':
        return cls(
            id=space.id,
            company_id=space.company_id,
            name=space.name,
            description=space.description,
            capacity=space.capacity,
            status=space.status,
            image_url=space.image_url,
            gallery_images=list(space.gallery_images or []) if with_gallery else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'companyId': self.company_id,
            'name': self.name,
            'description': self.description,
            'capacity': self.capacity,
            'status': self.status,
            'imageUrl': self.image_url,
            'galleryImages': self.gallery_images or [],
        }


@dataclass
class StaffRecord:
    id: int
    company_id: int
    user_id: int
    name: str
    email: Optional[str] = None
    position: Optional[str] = None
    status: str = 'Active'

    @classmethod
    def from_model(cls, staff) -> 'StaffRecord':
        return cls(
            id=staff.id,
            company_id=staff.company_id,
            user_id=staff.user_id,
            name=staff.name,
            email=staff.user.email if staff.user else None,
            position=staff.position,
            status=staff.status,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'companyId': self.company_id,
            'userId': self.user_id,
            'name': self.name,
            'email': self.email,
            'position': self.position,
            'status': self.status,
        }


@dataclass
class ClientRecord:
    id: int
    email: str
    name: str
    phone: Optional[str] = None
    role: Optional[str] = None

    @classmethod
    def from_model(cls, user, role: Optional[str] = None) -> 'ClientRecord':
        return cls(
            id=user.id,
            email=user.email,
            name=user.full_name,
            phone=user.phone,
            role=role,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'phone': self.phone,
            'role': self.role,
        }


@dataclass
class CurrencyRecord:
    id: int
    name: str
    symbol: str
    decimals: int = 2
    rounding: Decimal = Decimal('0.01')
    is_active: bool = True

    @classmethod
    def from_model(cls, currency) -> 'CurrencyRecord':
        return cls(
            id=currency.id,
            name=currency.name,
            symbol=currency.symbol,
            decimals=currency.decimals if currency.decimals is not None else 2,
            rounding=to_decimal(currency.rounding if currency.rounding is not None else '0.01', 'rounding'),
            is_active=bool(currency.is_active),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'symbol': self.symbol,
            'decimals': self.decimals,
            'rounding': str(self.rounding),
            'isActive': self.is_active,
        }
