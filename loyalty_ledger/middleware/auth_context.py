"""
Caller context middleware.

Authentication happens upstream: the gateway verifies the session and forwards
the caller's user id and role as headers. This module turns those headers into
a CallerContext and enforces a minimum role per endpoint.
"""
from functools import wraps

from flask import g, request

from ..models.user import Role
from ..services.commands import CallerContext
from ..utils.errors import forbidden, unauthorized

SUBJECT_HEADER = 'X-Auth-Subject'
ROLE_HEADER = 'X-Auth-Role'


def get_caller_from_request():
    """
    Read the caller from the gateway headers.

    Returns:
        CallerContext, or None if the headers are missing or malformed
    """
    subject = request.headers.get(SUBJECT_HEADER, '').strip()
    role = request.headers.get(ROLE_HEADER, '').strip().lower()
    if not subject.isdigit() or not role:
        return None
    try:
        return CallerContext(subject=int(subject), role=Role(role))
    except ValueError:
        return None


def require_role(minimum: Role):
    """
    Decorator requiring an authenticated caller with at least `minimum` role.

    Sets g.caller for the view.

    Usage:
        @require_role(Role.CASHIER)
        def create_transaction():
            caller = g.caller
            ...
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            caller = get_caller_from_request()
            if caller is None:
                return unauthorized()
            if not caller.role.at_least(minimum):
                return forbidden(f"Role {minimum.value} or higher required")
            g.caller = caller
            return f(*args, **kwargs)
        return decorated_function
    return decorator
