"""
Billing line items, draft bills and the appointment completion dialog.

All arithmetic is Decimal. Volume variants ("30ml") are billed per unit of
volume: quantity holds the volume and unit_price the per-unit price, while
display_price keeps the full variant price shown to the user.
"""
import logging
import re
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, List, Optional, Tuple

from agenda.domain.records import ProductRecord, ServiceRecord, VariantRecord, to_decimal
from agenda.exceptions import BillingError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

PRODUCT = 'product'
SERVICE = 'service'
ITEM_KINDS = (PRODUCT, SERVICE)

VOLUME_AMOUNT_PATTERN = re.compile(r'(\d+(?:\.\d+)?)')
VOLUME_UNIT_PATTERN = re.compile(r'([a-zA-Z]+)')
DEFAULT_VOLUME_UNIT = 'ml'

MONEY = Decimal('0.01')
HUNDRED = Decimal('100')

NO_PRICING_MESSAGE = 'This product has no variants or pricing information'


def _new_item_id(kind: str) -> str:
    return f"{kind}-{uuid.uuid4().hex[:10]}"


def _optional(value) -> Optional[str]:
    return str(value) if value is not None else None


@dataclass
class BillingItem:
    """One chargeable line of a bill."""
    id: str
    kind: str
    name: str
    quantity: Decimal = Decimal('1')
    unit_price: Decimal = Decimal('0')
    discount_percent: Decimal = Decimal('0')
    product_id: Optional[int] = None
    variant_id: Optional[int] = None
    service_id: Optional[int] = None
    description: str = ''
    unit: Optional[str] = None
    display_price: Optional[Decimal] = None
    variant_volume: Optional[str] = None

    def __post_init__(self):
        if self.kind not in ITEM_KINDS:
            raise ValidationError(f"Invalid item type: {self.kind}")
        self.quantity = _check_quantity(self.quantity)
        self.unit_price = to_decimal(self.unit_price, 'unitPrice')
        if self.unit_price < 0:
            raise ValidationError('unitPrice cannot be negative')
        self.discount_percent = _check_discount(self.discount_percent)
        if self.display_price is not None:
            self.display_price = to_decimal(self.display_price, 'displayPrice')

    @property
    def line_subtotal(self) -> Decimal:
        return self.quantity * self.unit_price

    @property
    def line_discount(self) -> Decimal:
        return self.line_subtotal * self.discount_percent / HUNDRED

    @property
    def line_total(self) -> Decimal:
        return max(self.line_subtotal - self.line_discount, Decimal('0'))

    @property
    def shown_price(self) -> Decimal:
        """Price shown to the user (full volume price for volume variants)."""
        return self.display_price if self.display_price is not None else self.unit_price

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.kind,
            'productId': self.product_id,
            'variantId': self.variant_id,
            'serviceId': self.service_id,
            'name': self.name,
            'description': self.description,
            'quantity': str(self.quantity),
            'unitPrice': str(self.unit_price),
            'discount': str(self.discount_percent),
            'unit': self.unit,
            'displayPrice': _optional(self.display_price),
            'variantVolume': self.variant_volume,
            'lineTotal': str(self.line_total.quantize(MONEY, rounding=ROUND_HALF_UP)),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BillingItem':
        kind = data.get('type') or data.get('kind')
        return cls(
            id=str(data.get('id') or _new_item_id(kind or PRODUCT)),
            kind=kind,
            name=data.get('name') or '',
            quantity=data.get('quantity', 1),
            unit_price=data.get('unitPrice', data.get('unit_price')),
            discount_percent=data.get('discount', data.get('discountPercent', 0)),
            product_id=data.get('productId'),
            variant_id=data.get('variantId'),
            service_id=data.get('serviceId'),
            description=data.get('description') or '',
            unit=data.get('unit'),
            display_price=data.get('displayPrice'),
            variant_volume=data.get('variantVolume'),
        )


def _check_quantity(value) -> Decimal:
    quantity = to_decimal(value, 'quantity')
    if quantity < 0:
        raise ValidationError('Quantity cannot be negative')
    return quantity


def _check_discount(value) -> Decimal:
    discount = to_decimal(value, 'discount')
    if discount < 0 or discount > HUNDRED:
        raise ValidationError('Discount must be between 0 and 100')
    return discount


def parse_volume(volume: str) -> Tuple[Decimal, str]:
    """
    Split a volume attribute into amount and unit.

    Args:
        volume: Value such as "30ml", "1.5 L" or "250"

    Returns:
        (amount, unit); the unit defaults to "ml"

    Raises:
        ValidationError: if there is no numeric part or it is zero

    Examples:
        parse_volume("30ml") -> (Decimal('30'), 'ml')
        parse_volume("250") -> (Decimal('250'), 'ml')
    """
    text = str(volume or '')
    amount_match = VOLUME_AMOUNT_PATTERN.search(text)
    if not amount_match:
        raise ValidationError(f"Invalid volume: '{text}'")

    amount = Decimal(amount_match.group(1))
    if amount == 0:
        raise ValidationError(f"Invalid volume: '{text}'")

    unit_match = VOLUME_UNIT_PATTERN.search(text)
    unit = unit_match.group(1) if unit_match else DEFAULT_VOLUME_UNIT
    return amount, unit


def _variant_description(product: ProductRecord, variant: VariantRecord) -> str:
    attributes = ', '.join(
        f"{key}: {value}" for key, value in (variant.attributes or {}).items() if value
    )
    base = product.description or ''
    if not attributes:
        return base
    return f"{base} ({attributes})".strip()


def build_product_item(product: ProductRecord, variant: Optional[VariantRecord] = None) -> BillingItem:
    """Build the bill line for a product or one of its variants."""
    if variant is None:
        return BillingItem(
            id=_new_item_id(PRODUCT),
            kind=PRODUCT,
            product_id=product.id,
            name=product.name or 'Unnamed Product',
            description=product.description or '',
            quantity=Decimal('1'),
            unit_price=product.base_price,
            display_price=product.base_price,
            unit=product.unit,
        )

    price = variant.price
    quantity = Decimal('1')
    unit_price = price
    unit = variant.stock_unit or product.unit

    if variant.volume:
        amount, unit = parse_volume(variant.volume)
        quantity = amount
        unit_price = price / amount

    return BillingItem(
        id=_new_item_id(PRODUCT),
        kind=PRODUCT,
        product_id=product.id,
        variant_id=variant.id,
        name=f"{product.name} - {variant.name}",
        description=_variant_description(product, variant),
        quantity=quantity,
        unit_price=unit_price,
        display_price=price,
        unit=unit,
        variant_volume=variant.volume,
    )


def build_service_item(service: ServiceRecord) -> BillingItem:
    return BillingItem(
        id=_new_item_id(SERVICE),
        kind=SERVICE,
        service_id=service.id,
        name=service.name,
        description=service.description or '',
        quantity=Decimal('1'),
        unit_price=service.price,
    )


@dataclass
class ProductSelection:
    """Outcome of picking a product: a bill line, or variants to choose from."""
    product: ProductRecord
    item: Optional[BillingItem] = None
    choices: List[VariantRecord] = field(default_factory=list)

    @property
    def requires_choice(self) -> bool:
        return self.item is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'requiresVariantChoice': self.requires_choice,
            'product': self.product.to_dict(),
            'item': self.item.to_dict() if self.item else None,
            'variants': [v.to_dict() for v in self.choices],
        }


def select_product(product: ProductRecord) -> ProductSelection:
    """
    Resolve what adding a product to a bill means.

    1. No variants and a base price: bill the product directly.
    2. Exactly one usable variant: bill it without asking.
    3. Two or more usable variants: the caller must pick one.
    4. Nothing usable: BillingError.
    """
    if not product.variants and product.base_price > 0:
        return ProductSelection(product=product, item=build_product_item(product))

    usable = product.usable_variants()
    if len(usable) == 1:
        return ProductSelection(product=product, item=build_product_item(product, usable[0]))
    if len(usable) > 1:
        return ProductSelection(product=product, choices=usable)

    raise BillingError(NO_PRICING_MESSAGE, payload={'product_id': product.id})


@dataclass(frozen=True)
class BillTotals:
    subtotal: Decimal
    discount_amount: Decimal
    final_total: Decimal

    def to_dict(self) -> Dict[str, str]:
        return {
            'subtotal': str(self.subtotal),
            'discountAmount': str(self.discount_amount),
            'finalTotal': str(self.final_total),
        }


def compute_totals(items) -> BillTotals:
    """Subtotal, discount and final total over a list of items, in cents."""
    subtotal = sum((item.line_subtotal for item in items), Decimal('0'))
    discount = sum((item.line_discount for item in items), Decimal('0'))
    subtotal = subtotal.quantize(MONEY, rounding=ROUND_HALF_UP)
    discount = discount.quantize(MONEY, rounding=ROUND_HALF_UP)
    return BillTotals(subtotal=subtotal, discount_amount=discount, final_total=subtotal - discount)


class Bill:
    """Ordered list of billing items being drafted."""

    def __init__(self, items: Optional[List[BillingItem]] = None):
        self.items: List[BillingItem] = list(items or [])

    def __len__(self):
        return len(self.items)

    def get_item(self, item_id: str) -> BillingItem:
        for item in self.items:
            if item.id == item_id:
                return item
        raise NotFoundError(f"Billing item {item_id} not found")

    def add(self, item: BillingItem) -> BillingItem:
        self.items.append(item)
        return item

    def add_product(self, product: ProductRecord) -> ProductSelection:
        """Add a product; when it has several variants nothing is added yet."""
        selection = select_product(product)
        if selection.item is not None:
            self.add(selection.item)
            logger.info(f"[BILLING] Added product {product.id} as '{selection.item.name}'")
        return selection

    def choose_variant(self, product: ProductRecord, variant_id) -> BillingItem:
        """Add the variant picked from a chooser."""
        variant = product.get_variant(variant_id)
        if variant is None:
            raise NotFoundError(f"Variant {variant_id} not found for product {product.id}")
        if not variant.is_usable():
            raise BillingError(NO_PRICING_MESSAGE, payload={'product_id': product.id, 'variant_id': variant.id})
        item = self.add(build_product_item(product, variant))
        logger.info(f"[BILLING] Added variant {variant.id} as '{item.name}'")
        return item

    def add_service(self, service: ServiceRecord) -> BillingItem:
        return self.add(build_service_item(service))

    def update_item(self, item_id: str, quantity=None, discount_percent=None) -> BillingItem:
        """Edit quantity and/or discount of a line; both are checked before either is applied."""
        item = self.get_item(item_id)
        new_quantity = _check_quantity(quantity) if quantity is not None else item.quantity
        new_discount = _check_discount(discount_percent) if discount_percent is not None else item.discount_percent
        item.quantity = new_quantity
        item.discount_percent = new_discount
        return item

    def remove_item(self, item_id: str) -> BillingItem:
        item = self.get_item(item_id)
        self.items.remove(item)
        return item

    def totals(self) -> BillTotals:
        return compute_totals(self.items)

    def to_list(self) -> List[Dict[str, Any]]:
        return [item.to_dict() for item in self.items]

    @classmethod
    def from_list(cls, data) -> 'Bill':
        return cls([BillingItem.from_dict(entry) for entry in data or []])


# Billing dialog

COMPLETED = 'completed'
PARTIALLY_COMPLETED = 'partially_completed'
NO_SHOW = 'no_show'
CANCELLED = 'cancelled'
DIALOG_STATUSES = (COMPLETED, NO_SHOW, CANCELLED, PARTIALLY_COMPLETED)

INITIAL_SERVICE_ITEM_ID = 'service-1'


class BillingDialog:
    """
    Draft completion of an existing appointment.

    Opens with one line for the appointment's base service; products and
    extra services are added through the same rules as any bill. Submitting
    hands ``{status, notes, billingItems, totalAmount}`` to ``dispatch`` and
    closes the dialog; persistence belongs to the receiver.
    """

    def __init__(self, appointment_id: int, company_id: int, bill: Optional[Bill] = None,
                 status: str = COMPLETED, notes: str = '',
                 dispatch: Optional[Callable[[Dict[str, Any]], None]] = None):
        self.appointment_id = appointment_id
        self.company_id = company_id
        self.bill = bill or Bill()
        self.status = status
        self.notes = notes or ''
        self.dispatch = dispatch
        self.closed = False

    @classmethod
    def open(cls, appointment_id: int, company_id: int, service_id: Optional[int] = None,
             service_name: Optional[str] = None, price=None, dispatch=None) -> 'BillingDialog':
        """New dialog pre-filled with the appointment's base service."""
        base_item = BillingItem(
            id=INITIAL_SERVICE_ITEM_ID,
            kind=SERVICE,
            service_id=service_id,
            name=service_name or 'Service',
            description='Professional service provided',
            quantity=Decimal('1'),
            unit_price=to_decimal(price, 'price'),
        )
        return cls(appointment_id, company_id, bill=Bill([base_item]), dispatch=dispatch)

    def _ensure_open(self):
        if self.closed:
            raise ValidationError('Billing dialog is closed')

    def set_status(self, status: str) -> None:
        self._ensure_open()
        if status not in DIALOG_STATUSES:
            raise ValidationError(f"Invalid status: {status}. Use one of: {', '.join(DIALOG_STATUSES)}")
        self.status = status

    def set_notes(self, notes: Optional[str]) -> None:
        self._ensure_open()
        self.notes = (notes or '').strip()

    def add_product(self, product: ProductRecord) -> ProductSelection:
        self._ensure_open()
        return self.bill.add_product(product)

    def choose_variant(self, product: ProductRecord, variant_id) -> BillingItem:
        self._ensure_open()
        return self.bill.choose_variant(product, variant_id)

    def add_service(self, service: ServiceRecord) -> BillingItem:
        self._ensure_open()
        return self.bill.add_service(service)

    def update_item(self, item_id: str, quantity=None, discount_percent=None) -> BillingItem:
        self._ensure_open()
        return self.bill.update_item(item_id, quantity=quantity, discount_percent=discount_percent)

    def remove_item(self, item_id: str) -> BillingItem:
        self._ensure_open()
        return self.bill.remove_item(item_id)

    def totals(self) -> BillTotals:
        return self.bill.totals()

    def build_payload(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'notes': self.notes,
            'billingItems': self.bill.to_list(),
            'totalAmount': str(self.totals().final_total),
        }

    def submit(self) -> Dict[str, Any]:
        """Hand the completion over to the collaborator and close."""
        self._ensure_open()
        payload = self.build_payload()
        if self.dispatch is not None:
            self.dispatch(payload)
        self.closed = True
        logger.info(
            f"[BILLING] Completion dispatched for appointment {self.appointment_id} "
            f"(status={self.status}, total={payload['totalAmount']})"
        )
        return payload

    def to_dict(self) -> Dict[str, Any]:
        return {
            'appointmentId': self.appointment_id,
            'companyId': self.company_id,
            'status': self.status,
            'notes': self.notes,
            'billingItems': self.bill.to_list(),
            'totals': self.totals().to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], dispatch=None) -> 'BillingDialog':
        return cls(
            appointment_id=data['appointmentId'],
            company_id=data['companyId'],
            bill=Bill.from_list(data.get('billingItems')),
            status=data.get('status') or COMPLETED,
            notes=data.get('notes') or '',
            dispatch=dispatch,
        )
