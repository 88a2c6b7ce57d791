"""
Caller identity as asserted by the identity provider in front of us.

The proxy authenticates the user and forwards id, role, email and name as
request headers; they are trusted as-is.
"""
from collections import namedtuple
from functools import wraps

from django.http import JsonResponse

from .models import ROLE_ADMIN, ROLE_STUDENT

Identity = namedtuple("Identity", "user_id role email name")


def identity_from_request(request):
    user_id = (request.headers.get("X-User-Id") or "").strip()
    if not user_id:
        return None
    role = (request.headers.get("X-User-Role") or ROLE_STUDENT).strip().lower()
    return Identity(
        user_id=user_id,
        role=role if role in (ROLE_ADMIN, ROLE_STUDENT) else ROLE_STUDENT,
        email=request.headers.get("X-User-Email", ""),
        name=request.headers.get("X-User-Name", ""),
    )


def identity_required(role=None):
    """Reject anonymous callers (401) and callers lacking `role` (403)."""
    def decorator(view):
        @wraps(view)
        def wrapped(request, *args, **kwargs):
            identity = identity_from_request(request)
            if identity is None:
                return JsonResponse({"error": "Authentication required"}, status=401)
            if role and identity.role != role:
                return JsonResponse({"error": "Not allowed"}, status=403)
            request.identity = identity
            return view(request, *args, **kwargs)
        return wrapped
    return decorator


admin_required = identity_required(ROLE_ADMIN)
