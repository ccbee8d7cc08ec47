# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services.context import CheckoutContext


TENANT_HEADER = "X-Tenant-Id"
BRANCH_HEADER = "X-Branch-Id"
USER_HEADER = "X-User-Id"


def _header_int(name: str) -> int | None:
    raw = request.headers.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        value = int(raw.strip())
    except ValueError:
        return None
    return value if value > 0 else None


def require_context(f):
    """
    Establish the tenant/branch/user context for a checkout-core route.

    MULTI-TENANT: the upstream auth gateway authenticates the caller and
    forwards trusted X-Tenant-Id / X-Branch-Id / X-User-Id headers. Sets:
    - g.checkout_context: CheckoutContext passed to every service call

    SECURITY: Returns 401 if tenant or branch is missing or malformed.
    Tenant and branch are never read from the request body.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        tenant_id = _header_int(TENANT_HEADER)
        branch_id = _header_int(BRANCH_HEADER)

        if tenant_id is None or branch_id is None:
            return jsonify({"error": "Tenant and branch context required"}), 401

        g.checkout_context = CheckoutContext(
            tenant_id=tenant_id,
            branch_id=branch_id,
            user_id=_header_int(USER_HEADER),
        )
        return f(*args, **kwargs)

    return decorated_function
