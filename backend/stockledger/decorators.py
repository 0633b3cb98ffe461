# Overview: Request and role decorators for API routes (the ledger's authorization gate).

from functools import wraps
from flask import request, jsonify, g

from .errors import PermissionDeniedError
from .extensions import db
from .models import BusinessMember, User


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'business_id')


def _header_id(name: str) -> int | None:
    value = (request.headers.get(name) or "").strip()
    return int(value) if value.isdigit() else None


def require_business(f):
    """
    Resolve the acting user and business and establish tenant context.

    Session issuance lives outside this service; the upstream gateway forwards
    the authenticated user and selected business as headers.

    Sets on Flask g:
    - g.current_user: the User making the request
    - g.business_id: the business every service call is scoped to
    - g.member_role: OWNER / BOSS / EMPLOYEE within that business

    Returns 401 when either header is missing or the user is unknown, and 403
    when the user is not a member of the business.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = _header_id("X-User-Id")
        business_id = _header_id("X-Business-Id")

        if user_id is None or business_id is None:
            return jsonify({"error": "Authentication required"}), 401

        user = db.session.get(User, user_id)
        if user is None:
            return jsonify({"error": "Authentication required"}), 401

        member = (
            db.session.query(BusinessMember)
            .filter_by(user_id=user_id, business_id=business_id)
            .first()
        )
        if member is None:
            error = PermissionDeniedError("You are not a member of this business")
            return jsonify(error.to_dict()), error.status_code

        g.current_user = user
        g.business_id = business_id
        g.member_role = member.role

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require the member to hold one of ``roles`` in the current business.

    Must be stacked under @require_business.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if g.member_role not in roles:
                error = PermissionDeniedError(
                    "Permission denied",
                    details={"required_roles": list(roles), "role": g.member_role},
                )
                return jsonify(error.to_dict()), error.status_code

            return f(*args, **kwargs)

        return decorated_function
    return decorator
