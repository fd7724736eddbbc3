"""Session login for JSON clients.

A client first fetches ``/auth/csrf/`` to receive the CSRF cookie and token,
then posts credentials to ``/auth/login/`` with the token in the
``X-CSRFToken`` header. Login rotates the token; the new one is returned in
the response body and must be used for subsequent POSTs.
"""

import logging

from django.contrib.auth import login as auth_login
from django.contrib.auth import logout as auth_logout
from django.contrib.auth.forms import AuthenticationForm
from django.http import HttpRequest, JsonResponse
from django.middleware.csrf import get_token
from django.views.decorators.csrf import ensure_csrf_cookie
from django.views.decorators.http import require_GET, require_POST

from ballots.views import _caller, _parse_json_body

logger = logging.getLogger(__name__)


@require_GET
@ensure_csrf_cookie
def csrf_token(request: HttpRequest) -> JsonResponse:
    return JsonResponse({"csrf_token": get_token(request)})


@require_POST
def login(request: HttpRequest) -> JsonResponse:
    try:
        data = _parse_json_body(request)
    except (ValueError, UnicodeDecodeError) as exc:
        return JsonResponse({"ok": False, "error": str(exc)}, status=400)

    username = str(data.get("username") or "").strip()
    form = AuthenticationForm(
        request,
        data={"username": username, "password": str(data.get("password") or "")},
    )
    if not form.is_valid():
        logger.warning(
            "ballots.auth.login_failed username=%s",
            username,
            extra={"event": "ballots.auth.login_failed", "component": "auth", "outcome": "denied"},
        )
        return JsonResponse({"ok": False, "error": "Invalid username or password."}, status=403)

    auth_login(request, form.get_user())
    logger.info(
        "ballots.auth.login username=%s",
        _caller(request),
        extra={"event": "ballots.auth.login", "component": "auth", "outcome": "success"},
    )
    return JsonResponse({"ok": True, "username": _caller(request), "csrf_token": get_token(request)})


@require_POST
def logout(request: HttpRequest) -> JsonResponse:
    auth_logout(request)
    return JsonResponse({"ok": True})
