"""Middleware for authentication and company context."""
from functools import wraps
from flask import session, g, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError
from agenda.database import get_session
from agenda.models import AppUser, UserCompany, ROLE_HIERARCHY


def load_user_and_company():
    """
    Load current user and company into g (Flask's per-request global).

    Called before each request to establish user and company context.
    Sets g.user, g.company_id and g.user_role if the session user is active
    and still a member of the selected company.
    """
    g.user = None
    g.company_id = None
    g.user_role = None

    user_id = session.get('user_id')
    if not user_id:
        return

    db_session = get_session()
    try:
        user = db_session.query(AppUser).filter_by(id=user_id, active=True).first()
        if not user:
            return
        g.user = user

        company_id = session.get('company_id')
        if not company_id:
            return

        # Verify user has access to this company
        membership = db_session.query(UserCompany).filter_by(
            user_id=user.id,
            company_id=company_id,
            active=True
        ).first()

        if membership:
            g.company_id = company_id
            g.user_role = membership.role
        else:
            session.pop('company_id', None)
    except SQLAlchemyError as e:
        db_session.rollback()
        current_app.logger.error(f"Error in load_user_and_company: {e}")


def _error(message, status_code):
    return jsonify({'status': 'error', 'message': message}), status_code


def require_login(f):
    """Decorator: Require user to be logged in (JSON 401 otherwise)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            return _error('Authentication required', 401)
        return f(*args, **kwargs)
    return decorated_function


def require_company(f):
    """
    Decorator: Require a company to be selected.

    Must be used AFTER require_login.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('company_id') is None:
            return _error('Select a company first', 403)
        return f(*args, **kwargs)
    return decorated_function


def require_role(min_role='STAFF'):
    """
    Decorator: Require minimum role in the current company.

    Roles hierarchy: OWNER > STAFF > CLIENT

    Must be used AFTER require_login and require_company.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if g.get('user') is None or g.get('company_id') is None:
                return _error('Access denied', 403)

            user_role_level = ROLE_HIERARCHY.get(g.get('user_role'), 0)
            required_level = ROLE_HIERARCHY.get(min_role, ROLE_HIERARCHY['OWNER'])

            if user_role_level < required_level:
                return _error(f'{min_role} role or higher required', 403)

            return f(*args, **kwargs)
        return decorated_function
    return decorator


def is_owner() -> bool:
    """True when the current user owns the current company."""
    return g.get('user_role') == 'OWNER'
