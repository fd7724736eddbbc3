from __future__ import annotations

import logging

from django.conf import settings
from django.db import connection
from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_GET

from ballots.verifiers import load_proof_verifier

logger = logging.getLogger(__name__)


@require_GET
def healthz(_request: HttpRequest) -> JsonResponse:
    return JsonResponse({"status": "ok"})


@require_GET
def readyz(_request: HttpRequest) -> JsonResponse:
    """Ready when the database answers and the default verifier backend loads."""
    try:
        connection.ensure_connection()
    except Exception as exc:
        logger.exception("Readiness check failed: database")
        return JsonResponse({"status": "not ready", "error": str(exc)}, status=503)

    backend = str(settings.PROOF_VERIFIER_BACKEND)
    try:
        load_proof_verifier(backend)
    except Exception as exc:
        logger.exception("Readiness check failed: verifier backend %s", backend)
        return JsonResponse({"status": "not ready", "error": f"verifier backend: {exc}"}, status=503)

    return JsonResponse({"status": "ready", "database": "ok", "verifier": backend})
