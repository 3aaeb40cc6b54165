"""Inbound payment provider webhooks."""

from __future__ import annotations

import logging

from django.conf import settings
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.response import Response

from core.errors import ServiceUnavailable
from core.retry import call_with_retry

from .models import WebhookEvent
from .providers import MalformedPayload, UnknownProvider, get_provider
from .services import apply_webhook_event

logger = logging.getLogger(__name__)

# Never persisted with the delivery.
SENSITIVE_HEADERS = frozenset({"authorization", "cookie"})


def _record_delivery(provider_name: str, request) -> WebhookEvent:
    headers = {
        key: value
        for key, value in request.headers.items()
        if key.lower() not in SENSITIVE_HEADERS
    }
    return WebhookEvent.objects.create(
        provider=provider_name,
        raw_body=request.body.decode("utf-8", errors="replace"),
        headers=headers,
    )


def _queue_replay(record: WebhookEvent) -> Response:
    from .tasks import replay_webhook_event

    try:
        record.status = WebhookEvent.Status.QUEUED
        record.save(update_fields=["status", "attempts"])
        replay_webhook_event.apply_async(
            args=[record.pk],
            countdown=getattr(settings, "WEBHOOK_REPLAY_COUNTDOWN_SECONDS", 30),
        )
    except Exception:
        logger.exception(
            "payments: could not queue webhook replay",
            extra={"webhook_event_id": record.pk, "provider": record.provider},
        )
        return Response(
            {"error": ServiceUnavailable.code, "detail": ServiceUnavailable.default_message},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )
    logger.warning(
        "payments: webhook queued for replay",
        extra={"webhook_event_id": record.pk, "provider": record.provider},
    )
    return Response({"status": WebhookEvent.Status.QUEUED}, status=status.HTTP_200_OK)


@api_view(["POST"])
@authentication_classes([])
@permission_classes([])
def payment_webhook(request, provider: str):
    """
    Receive a provider callback.

    The delivery is stored verbatim before anything else. Malformed bodies
    get a 400; everything else is acknowledged with 200 so the provider stops
    redelivering, including events we ignore or cannot match.
    """
    try:
        adapter = get_provider(provider)
    except UnknownProvider:
        return Response(
            {"error": "UnknownProvider", "detail": f"Unknown payment provider {provider!r}."},
            status=status.HTTP_404_NOT_FOUND,
        )

    try:
        record = call_with_retry(_record_delivery, adapter.name, request)
    except ServiceUnavailable as exc:
        return Response(
            {"error": exc.code, "detail": exc.detail},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    try:
        event = adapter.normalize(adapter.parse(request))
    except MalformedPayload as exc:
        logger.warning(
            "payments: malformed %s webhook: %s",
            adapter.name,
            exc,
            extra={"webhook_event_id": record.pk},
        )
        record.status = WebhookEvent.Status.REJECTED
        record.error = str(exc)
        record.save(update_fields=["status", "error"])
        return Response(
            {"error": "MalformedPayload", "detail": str(exc)},
            status=status.HTTP_400_BAD_REQUEST,
        )

    try:
        outcome = apply_webhook_event(record, event)
    except ServiceUnavailable:
        return _queue_replay(record)
    return Response({"status": outcome}, status=status.HTTP_200_OK)
