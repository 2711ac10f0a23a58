"""Sales blueprint - Multi-Tenant.

Sales come from appointment completion or from a direct point-of-sale call;
this blueprint creates the latter, lists sales, shows their detail and lets
owners remove lines or whole sales.
"""
from flask import Blueprint, request, jsonify, g

from agenda.database import get_session
from agenda.exceptions import UnauthorizedError, ValidationError
from agenda.middleware import require_login, require_company, require_role
from agenda.services import sale_service

sales_bp = Blueprint('sales', __name__, url_prefix='/api/sales')


@sales_bp.route('', methods=['GET'])
@require_login
@require_company
def list_sales():
    """Company sales, newest first; clients only see their own."""
    user_id = request.args.get('userId', type=int)
    if g.user_role == 'CLIENT':
        if user_id not in (None, g.user.id):
            raise UnauthorizedError("Clients can only list their own sales")
        user_id = g.user.id
    result = sale_service.list_sales(
        get_session(), g.company_id,
        user_id=user_id,
        limit=request.args.get('limit'),
        offset=request.args.get('offset'),
    )
    return jsonify({'status': 'success', **result})


@sales_bp.route('', methods=['POST'])
@require_login
@require_company
@require_role('STAFF')
def create_sale():
    """Point-of-sale sale billed by the logged-in member."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('A JSON object body is required')
    db_session = get_session()
    sale = sale_service.create_sale(db_session, g.company_id, data, staff_user_id=g.user.id)
    detail = sale_service.get_sale_detail(db_session, sale.id, g.company_id)
    return jsonify({'status': 'success', 'message': 'Sale created successfully', 'data': detail}), 201


@sales_bp.route('/<int:sale_id>', methods=['GET'])
@require_login
@require_company
@require_role('STAFF')
def sale_detail(sale_id):
    detail = sale_service.get_sale_detail(get_session(), sale_id, g.company_id)
    return jsonify({'status': 'success', 'data': detail})


@sales_bp.route('/<int:sale_id>/items/<int:item_id>', methods=['DELETE'])
@require_login
@require_company
@require_role('OWNER')
def delete_sale_item(sale_id, item_id):
    db_session = get_session()
    sale_service.delete_sale_item(db_session, sale_id, item_id, g.company_id)
    detail = sale_service.get_sale_detail(db_session, sale_id, g.company_id)
    return jsonify({'status': 'success', 'data': detail})


@sales_bp.route('/<int:sale_id>', methods=['DELETE'])
@require_login
@require_company
@require_role('OWNER')
def delete_sale(sale_id):
    sale_service.delete_sale(get_session(), sale_id, g.company_id)
    return jsonify({'status': 'success', 'message': f'Sale {sale_id} deleted'})
