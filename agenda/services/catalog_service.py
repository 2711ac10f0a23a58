"""
Catalog data providers - Multi-Tenant.

Paginated reads of services, products (and variants), spaces, staff, users and
currencies, plus service and space CRUD. Every list returns
``{"items": [...], "pagination": {...}}`` with items already converted to
records. Database failures surface as FetchError; nothing is retried here.
"""
import logging
import math
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload, joinedload, undefer

from agenda.database import get_schema_capabilities
from agenda.domain.records import (
    ProductRecord, VariantRecord, ServiceRecord, SpaceRecord, StaffRecord,
    ClientRecord, CurrencyRecord, to_decimal
)
from agenda.exceptions import FetchError, NotFoundError, ValidationError
from agenda.models import (
    CompanyService, CompanyProduct, CompanyProductVariant, CompanySpace, CompanyStaff,
    AppUser, UserCompany, UserRole, Currency, Company, Appointment
)
from agenda.services.cache_service import CacheService, get_cache

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 12
MAX_LIMIT = 100

# Currencies are not owned by a company; cache them under this scope
GLOBAL_SCOPE = 0

SERVICE_STATUSES = ('Active', 'Inactive')
SPACE_STATUSES = ('Active', 'Inactive', 'Maintenance')

LIKE_ESCAPE = '\\'


def normalize_pagination(limit=None, offset=None, default_limit: int = DEFAULT_LIMIT,
                         max_limit: int = MAX_LIMIT) -> Tuple[int, int]:
    """
    Clamp request pagination values.

    Invalid or non-positive limits use the default, limits above the maximum
    are clamped, invalid or negative offsets become 0.
    """
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        limit = default_limit
    if limit <= 0:
        limit = default_limit
    limit = min(limit, max_limit)

    try:
        offset = int(offset)
    except (TypeError, ValueError):
        offset = 0
    if offset < 0:
        offset = 0
    return limit, offset


def build_pagination(total: int, limit: int, offset: int) -> Dict[str, int]:
    return {
        'total': total,
        'limit': limit,
        'offset': offset,
        'totalPages': math.ceil(total / limit) if limit else 0,
        'currentPage': offset // limit + 1 if limit else 1,
    }


def _page(query, limit, offset) -> Tuple[list, Dict[str, int]]:
    limit, offset = normalize_pagination(limit, offset)
    total = query.order_by(None).count()
    rows = query.limit(limit).offset(offset).all()
    return rows, build_pagination(total, limit, offset)


def _search_filter(search: Optional[str], *columns):
    """Case-insensitive substring match; LIKE wildcards in the text match literally."""
    term = search.strip().lower()
    for char in (LIKE_ESCAPE, '%', '_'):
        term = term.replace(char, LIKE_ESCAPE + char)
    pattern = f"%{term}%"
    return or_(*[func.lower(column).like(pattern, escape=LIKE_ESCAPE) for column in columns])


@contextmanager
def _fetching(session, resource: str):
    """Turn database failures into FetchError for ``resource``."""
    try:
        yield
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[CATALOG] Failed to load {resource}: {e}")
        raise FetchError(resource, 'the database did not respond') from e


def _memoize(company_id: int, module: str, key: str, loader):
    try:
        cache = get_cache()
    except RuntimeError:
        return loader()
    return cache.memoize(company_id, module, key, loader)


def _invalidate(company_id: int, module: str) -> None:
    try:
        cache = get_cache()
    except RuntimeError:
        return
    cache.invalidate_module(company_id, module)


# Services

def list_services(session, company_id: int, search: Optional[str] = None, status: Optional[str] = None,
                  category: Optional[str] = None, limit=DEFAULT_LIMIT, offset=0) -> Dict[str, Any]:
    """List a company's services (cached per query, see CACHE_SERVICES_TTL)."""
    limit, offset = normalize_pagination(limit, offset)
    key = CacheService.query_key(search=search, status=status, category=category, limit=limit, offset=offset)

    def load():
        with _fetching(session, 'services'):
            query = session.query(CompanyService).filter(CompanyService.company_id == company_id)
            if search and search.strip():
                query = query.filter(_search_filter(
                    search, CompanyService.name, CompanyService.description, CompanyService.category
                ))
            if status:
                query = query.filter(func.lower(CompanyService.status) == status.strip().lower())
            if category:
                query = query.filter(func.lower(CompanyService.category) == category.strip().lower())
            query = query.order_by(CompanyService.name, CompanyService.id)
            rows, pagination = _page(query, limit, offset)
            return {
                'items': [ServiceRecord.from_model(row).to_dict() for row in rows],
                'pagination': pagination,
            }

    return _memoize(company_id, 'services', key, load)


def get_service(session, service_id, company_id: int) -> CompanyService:
    """Get a service of the company or raise NotFoundError."""
    with _fetching(session, 'service'):
        service = session.query(CompanyService).filter(
            CompanyService.id == service_id,
            CompanyService.company_id == company_id
        ).first()
    if not service:
        raise NotFoundError(f'Service {service_id} not found')
    return service


def get_service_record(session, service_id, company_id: int) -> ServiceRecord:
    return ServiceRecord.from_model(get_service(session, service_id, company_id))


def _apply_service_data(service: CompanyService, data: Dict[str, Any], partial: bool) -> None:
    if not partial or 'name' in data:
        name = (data.get('name') or '').strip()
        if not name:
            raise ValidationError('Service name is required')
        service.name = name

    if 'price' in data or not partial:
        price = to_decimal(data.get('price'), 'price')
        if price < 0:
            raise ValidationError('Price cannot be negative')
        service.price = price.quantize(Decimal('0.01'))

    if 'duration' in data or not partial:
        try:
            duration = int(data.get('duration') or 30)
        except (TypeError, ValueError):
            raise ValidationError('Duration must be a whole number of minutes')
        if duration <= 0:
            raise ValidationError('Duration must be greater than 0')
        service.duration = duration

    if 'status' in data and data['status'] is not None:
        status = str(data['status']).strip().capitalize()
        if status not in SERVICE_STATUSES:
            raise ValidationError(f"Invalid status: {data['status']}")
        service.status = status

    for field_name, column in (('description', 'description'), ('category', 'category'),
                               ('imageUrl', 'image_url')):
        if field_name in data:
            setattr(service, column, data[field_name] or None)


def create_service(session, company_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    service = CompanyService(company_id=company_id)
    _apply_service_data(service, data, partial=False)
    session.add(service)
    session.commit()
    _invalidate(company_id, 'services')
    logger.info(f"[CATALOG] Service {service.id} created for company {company_id}")
    return ServiceRecord.from_model(service).to_dict()


def update_service(session, service_id, company_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    service = get_service(session, service_id, company_id)
    _apply_service_data(service, data, partial=True)
    session.commit()
    _invalidate(company_id, 'services')
    return ServiceRecord.from_model(service).to_dict()


def delete_service(session, service_id, company_id: int) -> None:
    service = get_service(session, service_id, company_id)
    session.delete(service)
    session.commit()
    _invalidate(company_id, 'services')
    logger.info(f"[CATALOG] Service {service_id} deleted for company {company_id}")


# Products

def list_products(session, company_id: int, search: Optional[str] = None, active: Optional[bool] = None,
                  limit=DEFAULT_LIMIT, offset=0) -> Dict[str, Any]:
    with _fetching(session, 'products'):
        query = session.query(CompanyProduct).options(
            selectinload(CompanyProduct.variants)
        ).filter(CompanyProduct.company_id == company_id)
        if search and search.strip():
            query = query.filter(_search_filter(
                search, CompanyProduct.name, CompanyProduct.description, CompanyProduct.category
            ))
        if active is not None:
            query = query.filter(CompanyProduct.is_active == active)
        query = query.order_by(CompanyProduct.name, CompanyProduct.id)
        rows, pagination = _page(query, limit, offset)
        return {
            'items': [ProductRecord.from_model(row).to_dict() for row in rows],
            'pagination': pagination,
        }


def get_product_record(session, product_id, company_id: int) -> ProductRecord:
    """Product with all its variants, for billing."""
    with _fetching(session, 'product'):
        product = session.query(CompanyProduct).options(
            selectinload(CompanyProduct.variants)
        ).filter(
            CompanyProduct.id == product_id,
            CompanyProduct.company_id == company_id
        ).first()
    if not product:
        raise NotFoundError(f'Product {product_id} not found')
    return ProductRecord.from_model(product)


def list_variants(session, product_id, company_id: int) -> List[Dict[str, Any]]:
    with _fetching(session, 'product variants'):
        product = session.query(CompanyProduct.id).filter(
            CompanyProduct.id == product_id,
            CompanyProduct.company_id == company_id
        ).first()
        if not product:
            raise NotFoundError(f'Product {product_id} not found')
        variants = session.query(CompanyProductVariant).filter(
            CompanyProductVariant.product_id == product_id
        ).order_by(CompanyProductVariant.id).all()
        return [VariantRecord.from_model(v).to_dict() for v in variants]


# Spaces

def list_spaces(session, company_id: int, search: Optional[str] = None, status: Optional[str] = None,
                limit=DEFAULT_LIMIT, offset=0) -> Dict[str, Any]:
    """List a company's spaces (cached per query, see CACHE_SPACES_TTL)."""
    limit, offset = normalize_pagination(limit, offset)
    with_gallery = get_schema_capabilities().space_gallery_images
    key = CacheService.query_key(search=search, status=status, limit=limit, offset=offset, gallery=with_gallery)

    def load():
        with _fetching(session, 'spaces'):
            query = session.query(CompanySpace).filter(CompanySpace.company_id == company_id)
            if with_gallery:
                query = query.options(undefer(CompanySpace.gallery_images))
            if search and search.strip():
                query = query.filter(_search_filter(search, CompanySpace.name, CompanySpace.description))
            if status:
                query = query.filter(func.lower(CompanySpace.status) == status.strip().lower())
            query = query.order_by(CompanySpace.name, CompanySpace.id)
            rows, pagination = _page(query, limit, offset)
            return {
                'items': [SpaceRecord.from_model(row, with_gallery=with_gallery).to_dict() for row in rows],
                'pagination': pagination,
            }

    return _memoize(company_id, 'spaces', key, load)


def get_space(session, space_id, company_id: int) -> CompanySpace:
    with _fetching(session, 'space'):
        space = session.query(CompanySpace).filter(
            CompanySpace.id == space_id,
            CompanySpace.company_id == company_id
        ).first()
    if not space:
        raise NotFoundError(f'Space {space_id} not found')
    return space


def invalidate_spaces(company_id: int) -> None:
    """Drop cached space lists after a space changes."""
    _invalidate(company_id, 'spaces')


def get_space_record(session, space_id, company_id: int) -> SpaceRecord:
    with_gallery = get_schema_capabilities().space_gallery_images
    return SpaceRecord.from_model(get_space(session, space_id, company_id), with_gallery=with_gallery)


def _apply_space_data(space: CompanySpace, data: Dict[str, Any], partial: bool) -> None:
    if not partial or 'name' in data:
        name = (data.get('name') or '').strip()
        if not name:
            raise ValidationError('Space name is required')
        space.name = name

    if 'capacity' in data or not partial:
        try:
            capacity = int(data.get('capacity') or 1)
        except (TypeError, ValueError):
            raise ValidationError('Capacity must be a whole number')
        if capacity <= 0:
            raise ValidationError('Capacity must be greater than 0')
        space.capacity = capacity

    if 'status' in data and data['status'] is not None:
        status = str(data['status']).strip().capitalize()
        if status not in SPACE_STATUSES:
            raise ValidationError(f"Invalid status: {data['status']}")
        space.status = status

    for field_name, column in (('description', 'description'), ('imageUrl', 'image_url')):
        if field_name in data:
            setattr(space, column, data[field_name] or None)

    if 'galleryImages' in data:
        gallery = data['galleryImages'] or []
        if not isinstance(gallery, list) or not all(isinstance(image, str) for image in gallery):
            raise ValidationError('galleryImages must be a list of image URLs')
        if get_schema_capabilities().space_gallery_images:
            space.gallery_images = gallery
        else:
            logger.warning(f"[CATALOG] gallery_images column missing; gallery of space '{space.name}' not stored")


def create_space(session, company_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    space = CompanySpace(company_id=company_id)
    _apply_space_data(space, data, partial=False)
    session.add(space)
    session.commit()
    invalidate_spaces(company_id)
    logger.info(f"[CATALOG] Space {space.id} created for company {company_id}")
    return get_space_record(session, space.id, company_id).to_dict()


def update_space(session, space_id, company_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    space = get_space(session, space_id, company_id)
    _apply_space_data(space, data, partial=True)
    session.commit()
    invalidate_spaces(company_id)
    return get_space_record(session, space.id, company_id).to_dict()


def delete_space(session, space_id, company_id: int) -> None:
    """Delete a space; appointments booked in it keep their other details."""
    space = get_space(session, space_id, company_id)
    session.query(Appointment).filter(
        Appointment.space_id == space.id,
        Appointment.company_id == company_id
    ).update({Appointment.space_id: None}, synchronize_session=False)
    session.delete(space)
    session.commit()
    invalidate_spaces(company_id)
    logger.info(f"[CATALOG] Space {space_id} deleted for company {company_id}")


# Staff

def list_staff(session, company_id: int, search: Optional[str] = None, status: Optional[str] = None,
               limit=DEFAULT_LIMIT, offset=0) -> Dict[str, Any]:
    with _fetching(session, 'staff'):
        query = session.query(CompanyStaff).join(AppUser, CompanyStaff.user_id == AppUser.id).options(
            joinedload(CompanyStaff.user)
        ).filter(CompanyStaff.company_id == company_id)
        if search and search.strip():
            query = query.filter(_search_filter(
                search, AppUser.first_name, AppUser.last_name, AppUser.email, CompanyStaff.position
            ))
        if status:
            query = query.filter(func.lower(CompanyStaff.status) == status.strip().lower())
        query = query.order_by(AppUser.first_name, AppUser.last_name, CompanyStaff.id)
        rows, pagination = _page(query, limit, offset)
        return {
            'items': [StaffRecord.from_model(row).to_dict() for row in rows],
            'pagination': pagination,
        }


def get_staff(session, staff_id, company_id: int) -> CompanyStaff:
    with _fetching(session, 'staff member'):
        staff = session.query(CompanyStaff).filter(
            CompanyStaff.id == staff_id,
            CompanyStaff.company_id == company_id
        ).first()
    if not staff:
        raise NotFoundError(f'Staff member {staff_id} not found')
    return staff


# Users

def list_users(session, company_id: int, search: Optional[str] = None,
               limit=DEFAULT_LIMIT, offset=0) -> Dict[str, Any]:
    """Users known to the company: members and clients who booked before."""
    with _fetching(session, 'users'):
        query = session.query(AppUser, UserCompany.role).join(
            UserCompany, UserCompany.user_id == AppUser.id
        ).filter(
            UserCompany.company_id == company_id,
            UserCompany.active == True,
            AppUser.active == True
        )
        if search and search.strip():
            query = query.filter(_search_filter(
                search, AppUser.first_name, AppUser.last_name, AppUser.email, AppUser.phone
            ))
        query = query.order_by(AppUser.first_name, AppUser.last_name, AppUser.id)
        rows, pagination = _page(query, limit, offset)
        return {
            'items': [ClientRecord.from_model(user, role).to_dict() for user, role in rows],
            'pagination': pagination,
        }


def get_company_user(session, user_id, company_id: int) -> AppUser:
    """User with an active membership in the company, or NotFoundError."""
    with _fetching(session, 'user'):
        user = session.query(AppUser).join(UserCompany, UserCompany.user_id == AppUser.id).filter(
            AppUser.id == user_id,
            AppUser.active == True,
            UserCompany.company_id == company_id,
            UserCompany.active == True
        ).first()
    if not user:
        raise NotFoundError(f'User {user_id} not found')
    return user

def register_client(session, user_id: int, company_id: int, source: str) -> UserCompany:
    """Add the user to the company's client list unless already a member."""
    membership = session.query(UserCompany).filter_by(user_id=user_id, company_id=company_id).first()
    if membership:
        if not membership.active:
            membership.active = True
        return membership
    membership = UserCompany(
        user_id=user_id,
        company_id=company_id,
        role=UserRole.CLIENT.value,
        source=source,
        active=True
    )
    session.add(membership)
    logger.info(f"[CATALOG] User {user_id} registered as client of company {company_id} ({source})")
    return membership



# Currencies

def list_currencies(session, active: Optional[bool] = None) -> Dict[str, Any]:
    with _fetching(session, 'currencies'):
        query = session.query(Currency)
        if active is not None:
            query = query.filter(Currency.is_active == active)
        rows = query.order_by(Currency.name).all()
        return {
            'items': [CurrencyRecord.from_model(row).to_dict() for row in rows],
            'pagination': build_pagination(len(rows), max(len(rows), 1), 0),
        }


def get_currency(session, currency_id) -> Dict[str, Any]:
    """Currency by id (cached, see CACHE_CURRENCIES_TTL)."""
    def load():
        with _fetching(session, 'currency'):
            currency = session.query(Currency).filter(Currency.id == currency_id).first()
        if not currency:
            raise NotFoundError(f'Currency {currency_id} not found')
        return CurrencyRecord.from_model(currency).to_dict()

    return _memoize(GLOBAL_SCOPE, 'currencies', str(currency_id), load)


def get_company_currency(session, company_id: int) -> Optional[Dict[str, Any]]:
    """Currency configured for the company, None when it has none."""
    with _fetching(session, 'company'):
        currency_id = session.query(Company.currency_id).filter(Company.id == company_id).scalar()
    if currency_id is None:
        return None
    return get_currency(session, currency_id)
