"""Sale service - Multi-Tenant.

Builds sales from billing items (appointment completions and point-of-sale
sales), lists them and edits stored ones.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload, joinedload

from agenda.domain.billing import Bill, BillingItem, PRODUCT, SERVICE
from agenda.domain.records import to_decimal
from agenda.exceptions import AgendaError, NotFoundError, ValidationError
from agenda.models import Appointment, AppUser, CompanyProduct, CompanyProductVariant, Sale, SaleItem
from agenda.services import catalog_service
from agenda.utils.formatters import format_currency

logger = logging.getLogger(__name__)

MONEY = Decimal('0.01')


def recalculate_totals(sale: Sale) -> Sale:
    """
    Recompute subtotal, discount and total from the sale items.

    total = subtotal - discount, each rounded to cents.
    """
    subtotal = sum((item.line_subtotal for item in sale.items), Decimal('0')).quantize(MONEY, rounding=ROUND_HALF_UP)
    discount = sum((item.line_discount for item in sale.items), Decimal('0')).quantize(MONEY, rounding=ROUND_HALF_UP)
    sale.subtotal = subtotal
    sale.discount_amount = discount
    sale.total_amount = subtotal - discount
    return sale


def sale_item_from_billing(session, item: BillingItem, company_id: int) -> SaleItem:
    """Historical sale line; references are checked against the company."""
    if item.kind == SERVICE:
        if item.service_id:
            catalog_service.get_service(session, item.service_id, company_id)
        else:
            logger.warning(f"[BILLING] Service line '{item.name}' has no service reference")
    elif item.kind == PRODUCT:
        if item.variant_id:
            variant = session.query(CompanyProductVariant).join(CompanyProduct).filter(
                CompanyProductVariant.id == item.variant_id,
                CompanyProduct.company_id == company_id
            ).first()
            if not variant:
                raise NotFoundError(f'Variant {item.variant_id} not found')
            if not item.product_id:
                item.product_id = variant.product_id
        elif item.product_id:
            product = session.query(CompanyProduct.id).filter(
                CompanyProduct.id == item.product_id,
                CompanyProduct.company_id == company_id
            ).first()
            if not product:
                raise NotFoundError(f'Product {item.product_id} not found')
        else:
            raise ValidationError(f"Product line '{item.name}' needs a variantId or productId")

    return SaleItem(
        item_type=item.kind,
        service_id=item.service_id if item.kind == SERVICE else None,
        product_id=item.product_id if item.kind == PRODUCT else None,
        variant_id=item.variant_id if item.kind == PRODUCT else None,
        name=item.name,
        unit=item.unit,
        quantity=item.quantity,
        unit_price=item.unit_price,
        discount=item.discount_percent,
    )


def decrement_stock(session, sale_items) -> None:
    """Take sold quantities off variant stock; stock never goes below zero."""
    for sale_item in sale_items:
        if not sale_item.variant_id:
            continue
        variant = session.query(CompanyProductVariant).filter_by(id=sale_item.variant_id).first()
        if variant is None:
            continue
        current = Decimal(variant.current_stock or 0)
        remaining = current - Decimal(sale_item.quantity)
        if remaining < 0:
            logger.warning(
                f"[BILLING] Stock for variant {variant.id} below zero "
                f"(had {current}, sold {sale_item.quantity}); set to 0"
            )
            remaining = Decimal('0')
        variant.current_stock = remaining


def billing_entries(value) -> list:
    """Billing item dicts of a request, or ValidationError."""
    entries = value or []
    if not isinstance(entries, list) or not all(isinstance(entry, dict) for entry in entries):
        raise ValidationError('billingItems must be a list of objects')
    return entries


def build_sale(session, company_id: int, customer_id: int, bill: Bill, staff_user_id: Optional[int] = None,
               notes: Optional[str] = None, sent_total=None) -> Sale:
    """
    Add a Sale built from the bill to the session and flush it.

    Totals are recomputed from the items; a different ``sent_total`` is only
    logged. Sold variants lose stock. The caller commits.
    """
    sale_items = [sale_item_from_billing(session, item, company_id) for item in bill.items]
    totals = bill.totals()

    sale = Sale(
        company_id=company_id,
        user_id=customer_id,
        staff_id=staff_user_id,
        subtotal=totals.subtotal,
        discount_amount=totals.discount_amount,
        total_amount=totals.final_total,
        notes=str(notes or '').strip() or None,
        items=sale_items,
    )
    session.add(sale)
    session.flush()
    decrement_stock(session, sale_items)

    if sent_total is not None and to_decimal(sent_total, 'totalAmount') != totals.final_total:
        logger.warning(
            f"[BILLING] Sale {sale.id}: client total {sent_total} "
            f"differs from computed {totals.final_total}; stored computed total"
        )
    return sale


def create_sale(session, company_id: int, data: Dict[str, Any], staff_user_id: Optional[int] = None) -> Sale:
    """
    Point-of-sale sale without an appointment.

    Expects clientId and a non-empty items list in the billing item format;
    the client joins the company's client list.

    Raises:
        ValidationError: missing client, no items or malformed items
        NotFoundError: client, service, product or variant not found
    """
    client_id = data.get('clientId')
    if client_id in (None, ''):
        raise ValidationError('clientId is required')
    try:
        client_id = int(client_id)
    except (TypeError, ValueError):
        raise ValidationError('clientId must be an integer id')
    entries = billing_entries(data.get('items'))
    if not entries:
        raise ValidationError('At least one item is required')

    try:
        client = session.query(AppUser).filter_by(id=client_id, active=True).first()
        if not client:
            raise NotFoundError(f'Client {client_id} not found')
        sale = build_sale(
            session, company_id, client.id, Bill.from_list(entries),
            staff_user_id=staff_user_id,
            notes=data.get('notes'),
            sent_total=data.get('totalAmount'),
        )
        catalog_service.register_client(session, client.id, company_id, source='sale')
        session.commit()
    except (AgendaError, SQLAlchemyError):
        session.rollback()
        raise

    logger.info(f"[SALES] Sale {sale.id} created for company {company_id} (total {sale.total_amount})")
    return sale


def _get_sale(session, sale_id, company_id: int) -> Sale:
    sale = session.query(Sale).options(
        selectinload(Sale.items),
        joinedload(Sale.customer),
        joinedload(Sale.staff),
    ).filter(
        Sale.id == sale_id,
        Sale.company_id == company_id
    ).first()
    if not sale:
        raise NotFoundError(f'Sale {sale_id} not found')
    return sale


def _sale_summary(sale: Sale, currency: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        'id': sale.id,
        'companyId': sale.company_id,
        'userId': sale.user_id,
        'customerName': sale.customer.full_name if sale.customer else None,
        'staffId': sale.staff_id,
        'staffName': sale.staff.full_name if sale.staff else None,
        'subtotal': str(sale.subtotal),
        'discountAmount': str(sale.discount_amount),
        'totalAmount': str(sale.total_amount),
        'totalFormatted': format_currency(sale.total_amount, currency),
        'notes': sale.notes,
        'createdAt': sale.created_at.isoformat() if sale.created_at else None,
    }


def list_sales(session, company_id: int, user_id: Optional[int] = None, limit=None, offset=None) -> Dict[str, Any]:
    """Sales of a company, newest first; optionally only one customer's."""
    query = session.query(Sale).options(
        joinedload(Sale.customer),
        joinedload(Sale.staff),
    ).filter(Sale.company_id == company_id)
    if user_id:
        query = query.filter(Sale.user_id == user_id)

    limit, offset = catalog_service.normalize_pagination(limit, offset)
    total = query.order_by(None).count()
    sales = query.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).offset(offset).all()
    currency = catalog_service.get_company_currency(session, company_id)
    return {
        'items': [_sale_summary(sale, currency) for sale in sales],
        'pagination': catalog_service.build_pagination(total, limit, offset),
    }


def get_sale_detail(session, sale_id, company_id: int) -> Dict[str, Any]:
    """Sale with its lines, line totals and formatted totals."""
    sale = _get_sale(session, sale_id, company_id)
    currency = catalog_service.get_company_currency(session, company_id)

    appointment_id = session.query(Appointment.id).filter(
        Appointment.sale_id == sale.id,
        Appointment.company_id == company_id
    ).scalar()

    detail = _sale_summary(sale, currency)
    detail.update({
        'appointmentId': appointment_id,
        'subtotalFormatted': format_currency(sale.subtotal, currency),
        'discountFormatted': format_currency(sale.discount_amount, currency),
        'items': [
            {
                'id': item.id,
                'type': item.item_type,
                'serviceId': item.service_id,
                'productId': item.product_id,
                'variantId': item.variant_id,
                'name': item.name,
                'unit': item.unit,
                'quantity': str(item.quantity),
                'unitPrice': str(item.unit_price),
                'discount': str(item.discount),
                'lineTotal': str(item.line_total.quantize(MONEY, rounding=ROUND_HALF_UP)),
                'lineTotalFormatted': format_currency(item.line_total, currency),
            }
            for item in sale.items
        ],
    })
    return detail


def delete_sale_item(session, sale_id, item_id, company_id: int) -> Sale:
    """Remove one line from a sale and recompute its totals."""
    sale = _get_sale(session, sale_id, company_id)
    item = next((i for i in sale.items if i.id == int(item_id)), None)
    if item is None:
        raise NotFoundError(f'Sale item {item_id} not found')

    sale.items.remove(item)
    recalculate_totals(sale)
    session.commit()
    logger.info(f"[SALES] Item {item_id} removed from sale {sale_id}; total now {sale.total_amount}")
    return sale


def delete_sale(session, sale_id, company_id: int) -> None:
    """Delete a sale; the appointment it billed loses its sale link."""
    sale = _get_sale(session, sale_id, company_id)
    session.query(Appointment).filter(
        Appointment.sale_id == sale.id,
        Appointment.company_id == company_id
    ).update({Appointment.sale_id: None}, synchronize_session=False)
    session.delete(sale)
    session.commit()
    logger.info(f"[SALES] Sale {sale_id} deleted for company {company_id}")
