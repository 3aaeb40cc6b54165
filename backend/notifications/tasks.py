from __future__ import annotations

import logging
from dataclasses import dataclass

from celery import shared_task
from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string

from bookings.models import Booking
from notifications.models import Notification, NotificationLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventTemplate:
    recipients: tuple[str, ...]
    title: str
    message: str


BOOKING_EVENTS: dict[str, EventTemplate] = {
    "booking_pending": EventTemplate(
        ("host",),
        "New booking request",
        "{guest} requested {listing} from {check_in} to {check_out}.",
    ),
    "booking_confirmed": EventTemplate(
        ("guest", "host"),
        "Booking confirmed",
        "The stay at {listing} from {check_in} to {check_out} is confirmed.",
    ),
    "booking_accepted": EventTemplate(
        ("guest",),
        "Your booking request was accepted",
        "{host} accepted your request for {listing}. Complete payment to confirm your stay.",
    ),
    "booking_declined": EventTemplate(
        ("guest",),
        "Your booking request was declined",
        "{host} could not host you at {listing} from {check_in} to {check_out}.",
    ),
    "booking_cancelled_by_guest": EventTemplate(
        ("guest", "host"),
        "Booking cancelled",
        "The stay at {listing} from {check_in} to {check_out} was cancelled by the guest. "
        "Refund: {refund} {currency}.",
    ),
    "booking_cancelled_by_host": EventTemplate(
        ("guest",),
        "Your host cancelled the booking",
        "{host} cancelled your stay at {listing}. Refund: {refund} {currency}.",
    ),
    "booking_completed": EventTemplate(
        ("guest", "host"),
        "Stay completed",
        "The stay at {listing} is complete. Thank you for using {site_name}.",
    ),
    "payment_received": EventTemplate(
        ("guest", "host"),
        "Payment received",
        "Payment of {total} {currency} for {listing} was received.",
    ),
    "payment_failed": EventTemplate(
        ("guest",),
        "Payment failed",
        "Your payment for {listing} did not go through. Please try again.",
    ),
    "payment_refunded": EventTemplate(
        ("guest",),
        "Refund processed",
        "Your refund for {listing} has been processed.",
    ),
}


def _display_name(user) -> str:
    full_name = f"{user.first_name} {user.last_name}".strip()
    return full_name or user.username


def _record_delivery(
    booking: Booking,
    user,
    event: str,
    channel: str,
    *,
    error: str = "",
) -> None:
    """Write one NotificationLog row; a failed write is logged and dropped."""
    status = NotificationLog.Status.FAILED if error else NotificationLog.Status.SENT
    try:
        NotificationLog.objects.create(
            channel=channel,
            type=event,
            status=status,
            user=user,
            booking_id=booking.pk,
            error=error,
        )
    except Exception:
        logger.exception(
            "notifications: could not record %s delivery",
            channel,
            extra={"booking_id": booking.pk, "event": event},
        )


def _email_participant(booking: Booking, user, event: str, title: str, context: dict) -> bool:
    if not user.email:
        logger.warning(
            "notifications: %s has no email address",
            user.pk,
            extra={"booking_id": booking.pk, "event": event},
        )
        _record_delivery(
            booking, user, event, NotificationLog.Channel.EMAIL, error="missing recipient email"
        )
        return False

    body = render_to_string("email/booking_event.txt", {**context, "subject": title}).strip()
    email = EmailMultiAlternatives(
        subject=title,
        body=body,
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=[user.email],
    )
    try:
        email.send(fail_silently=False)
    except Exception as exc:
        logger.exception(
            "notifications: %s email to %s failed",
            event,
            user.pk,
            extra={"booking_id": booking.pk},
        )
        _record_delivery(
            booking,
            user,
            event,
            NotificationLog.Channel.EMAIL,
            error=str(exc) or exc.__class__.__name__,
        )
        return False
    _record_delivery(booking, user, event, NotificationLog.Channel.EMAIL)
    return True


@shared_task(queue="emails", name="notifications.send_booking_notification")
def send_booking_notification(booking_id: int, event: str) -> int:
    """Create in-app notices and emails for a booking event; return emails sent."""
    template = BOOKING_EVENTS.get(event)
    if template is None:
        logger.warning("notifications: unknown booking event %s", event)
        return 0
    booking = (
        Booking.objects.select_related("listing", "guest", "host").filter(pk=booking_id).first()
    )
    if booking is None:
        logger.warning("notifications: booking %s no longer exists", booking_id)
        return 0

    site_name = getattr(settings, "SITE_NAME", "GetIn Haiti")
    action_path = f"/bookings/{booking.pk}"
    action_url = (getattr(settings, "FRONTEND_ORIGIN", "") or "").rstrip("/") + action_path
    values = {
        "site_name": site_name,
        "listing": booking.listing.title,
        "guest": _display_name(booking.guest),
        "host": _display_name(booking.host),
        "check_in": booking.check_in.isoformat(),
        "check_out": booking.check_out.isoformat(),
        "total": booking.total_amount,
        "refund": booking.refund_amount,
        "currency": booking.currency,
    }
    title = template.title.format(**values)
    message = template.message.format(**values)

    sent = 0
    for role in template.recipients:
        user = booking.guest if role == "guest" else booking.host
        Notification.objects.create(
            user=user,
            type=event,
            title=title,
            message=message,
            data={"booking_id": booking.pk, "status": booking.status},
            action_url=action_path,
        )
        _record_delivery(booking, user, event, NotificationLog.Channel.IN_APP)
        context = {
            "site_name": site_name,
            "recipient_name": _display_name(user),
            "message": message,
            "action_url": action_url,
            "booking": booking,
        }
        if _email_participant(booking, user, event, title, context):
            sent += 1
    return sent
