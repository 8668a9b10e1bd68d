"""Custom middleware for the community portal."""

from __future__ import annotations

import logging
import time

from django.conf import settings

logger = logging.getLogger(__name__)


class RequestTimingMiddleware:
    """
    Loga requests lentos e expõe a duração no header X-Request-Duration-Ms.

    Chamadas ao Asaas são síncronas, então um request lento aqui quase sempre
    é o gateway demorando a responder.
    """

    def __init__(self, get_response):
        self.get_response = get_response
        self.threshold_ms = getattr(settings, "SLOW_REQUEST_THRESHOLD_MS", 500)

    def __call__(self, request):
        start = time.perf_counter()
        response = self.get_response(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        response["X-Request-Duration-Ms"] = f"{elapsed_ms:.0f}"

        if elapsed_ms > self.threshold_ms:
            logger.warning(
                "SLOW_REQUEST path=%s method=%s status=%s elapsed_ms=%.0f",
                request.path,
                request.method,
                response.status_code,
                elapsed_ms,
            )
        return response
