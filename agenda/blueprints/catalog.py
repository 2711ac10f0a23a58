"""Catalog API blueprint - Multi-Tenant.

Read endpoints feeding the booking wizard and the billing dialog, plus
service and space CRUD for owners.
"""
from typing import Optional

from flask import Blueprint, request, jsonify, g, current_app

from agenda.database import get_session
from agenda.exceptions import ValidationError
from agenda.middleware import require_login, require_company, require_role
from agenda.services import catalog_service

catalog_bp = Blueprint('catalog', __name__, url_prefix='/api/catalog')


def _pagination_args():
    return catalog_service.normalize_pagination(
        request.args.get('limit'),
        request.args.get('offset'),
        default_limit=current_app.config.get('CATALOG_DEFAULT_LIMIT', catalog_service.DEFAULT_LIMIT),
        max_limit=current_app.config.get('CATALOG_MAX_LIMIT', catalog_service.MAX_LIMIT),
    )


def _bool_arg(name: str) -> Optional[bool]:
    value = request.args.get(name)
    if value is None or value == '':
        return None
    lowered = value.strip().lower()
    if lowered in ('1', 'true', 'yes'):
        return True
    if lowered in ('0', 'false', 'no'):
        return False
    raise ValidationError(f"'{name}' must be true or false")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('A JSON object body is required')
    return data


# Services

@catalog_bp.route('/services', methods=['GET'])
@require_login
@require_company
def list_services():
    limit, offset = _pagination_args()
    result = catalog_service.list_services(
        get_session(), g.company_id,
        search=request.args.get('search'),
        status=request.args.get('status'),
        category=request.args.get('category'),
        limit=limit, offset=offset
    )
    return jsonify({'status': 'success', **result})


@catalog_bp.route('/services', methods=['POST'])
@require_login
@require_company
@require_role('OWNER')
def create_service():
    service = catalog_service.create_service(get_session(), g.company_id, _json_body())
    return jsonify({'status': 'success', 'data': service}), 201


@catalog_bp.route('/services/<int:service_id>', methods=['GET'])
@require_login
@require_company
def get_service(service_id):
    service = catalog_service.get_service_record(get_session(), service_id, g.company_id)
    return jsonify({'status': 'success', 'data': service.to_dict()})


@catalog_bp.route('/services/<int:service_id>', methods=['PUT'])
@require_login
@require_company
@require_role('OWNER')
def update_service(service_id):
    service = catalog_service.update_service(get_session(), service_id, g.company_id, _json_body())
    return jsonify({'status': 'success', 'data': service})


@catalog_bp.route('/services/<int:service_id>', methods=['DELETE'])
@require_login
@require_company
@require_role('OWNER')
def delete_service(service_id):
    catalog_service.delete_service(get_session(), service_id, g.company_id)
    return jsonify({'status': 'success', 'message': 'Service deleted'})


# Products

@catalog_bp.route('/products', methods=['GET'])
@require_login
@require_company
def list_products():
    limit, offset = _pagination_args()
    result = catalog_service.list_products(
        get_session(), g.company_id,
        search=request.args.get('search'),
        active=_bool_arg('active'),
        limit=limit, offset=offset
    )
    return jsonify({'status': 'success', **result})


@catalog_bp.route('/products/<int:product_id>/variants', methods=['GET'])
@require_login
@require_company
def list_variants(product_id):
    variants = catalog_service.list_variants(get_session(), product_id, g.company_id)
    return jsonify({'status': 'success', 'items': variants})


# Spaces

@catalog_bp.route('/spaces', methods=['GET'])
@require_login
@require_company
def list_spaces():
    limit, offset = _pagination_args()
    result = catalog_service.list_spaces(
        get_session(), g.company_id,
        search=request.args.get('search'),
        status=request.args.get('status'),
        limit=limit, offset=offset
    )
    return jsonify({'status': 'success', **result})


@catalog_bp.route('/spaces', methods=['POST'])
@require_login
@require_company
@require_role('OWNER')
def create_space():
    space = catalog_service.create_space(get_session(), g.company_id, _json_body())
    return jsonify({'status': 'success', 'data': space}), 201


@catalog_bp.route('/spaces/<int:space_id>', methods=['GET'])
@require_login
@require_company
def get_space(space_id):
    space = catalog_service.get_space_record(get_session(), space_id, g.company_id)
    return jsonify({'status': 'success', 'data': space.to_dict()})


@catalog_bp.route('/spaces/<int:space_id>', methods=['PUT'])
@require_login
@require_company
@require_role('OWNER')
def update_space(space_id):
    space = catalog_service.update_space(get_session(), space_id, g.company_id, _json_body())
    return jsonify({'status': 'success', 'data': space})


@catalog_bp.route('/spaces/<int:space_id>', methods=['DELETE'])
@require_login
@require_company
@require_role('OWNER')
def delete_space(space_id):
    catalog_service.delete_space(get_session(), space_id, g.company_id)
    return jsonify({'status': 'success', 'message': 'Space deleted'})


# Staff, users

@catalog_bp.route('/staff', methods=['GET'])
@require_login
@require_company
def list_staff():
    limit, offset = _pagination_args()
    result = catalog_service.list_staff(
        get_session(), g.company_id,
        search=request.args.get('search'),
        status=request.args.get('status'),
        limit=limit, offset=offset
    )
    return jsonify({'status': 'success', **result})


@catalog_bp.route('/users', methods=['GET'])
@require_login
@require_company
def list_users():
    limit, offset = _pagination_args()
    result = catalog_service.list_users(
        get_session(), g.company_id,
        search=request.args.get('search'),
        limit=limit, offset=offset
    )
    return jsonify({'status': 'success', **result})


# Currencies (read-only)

@catalog_bp.route('/currencies', methods=['GET'])
@require_login
def list_currencies():
    result = catalog_service.list_currencies(get_session(), active=_bool_arg('active'))
    return jsonify({'status': 'success', **result})


@catalog_bp.route('/currencies/<int:currency_id>', methods=['GET'])
@require_login
def get_currency(currency_id):
    currency = catalog_service.get_currency(get_session(), currency_id)
    return jsonify({'status': 'success', 'data': currency})
