"""Shared helpers for turning booking core errors into API responses."""

from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.response import Response

from core.errors import BookingCoreError, NotFound, ServiceUnavailable

logger = logging.getLogger(__name__)


def error_payload(code: str, detail: str) -> dict[str, str]:
    return {"error": code, "detail": detail}


def core_error_response(exc: BookingCoreError) -> Response:
    """Map a BookingCoreError to ``{error, detail}`` with its HTTP status."""
    if isinstance(exc, ServiceUnavailable):
        http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(exc, NotFound):
        http_status = status.HTTP_404_NOT_FOUND
    else:
        http_status = status.HTTP_400_BAD_REQUEST
    return Response(error_payload(exc.code, exc.detail), status=http_status)


def provider_error_response(exc: Exception) -> Response:
    """Map payment provider exceptions raised while talking to a provider."""
    from payments.providers import ProviderPaymentError

    if isinstance(exc, ProviderPaymentError):
        return Response(
            error_payload("PaymentFailed", str(exc)),
            status=status.HTTP_400_BAD_REQUEST,
        )
    logger.warning("payments: provider unavailable: %s", exc)
    return Response(
        error_payload(ServiceUnavailable.code, "Payment provider is temporarily unavailable."),
        status=status.HTTP_503_SERVICE_UNAVAILABLE,
    )
