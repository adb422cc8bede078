"""
Post-commit fan-out of "booking created" to external collaborators.

Each collaborator (ticket rendering, messaging, invoicing) runs on its own and
can only fail on its own: errors are logged, never raised back into the
booking flow, because by the time this runs the booking is already committed.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional

from flask import current_app

from utils.emailer import email_configured, send_email

logger = logging.getLogger(__name__)

COLLABORATORS = ("ticket", "messaging", "invoicing")


@dataclass(frozen=True)
class BookingCreated:
    booking_id: int
    tenant_id: int
    service_id: int
    slot_id: int
    customer_name: str
    customer_phone: str
    customer_email: Optional[str]
    visitor_count: int
    language: str = "en"

    @classmethod
    def from_booking(cls, booking):
        return cls(
            booking_id=booking.id,
            tenant_id=booking.tenant_id,
            service_id=booking.service_id,
            slot_id=booking.slot_id,
            customer_name=booking.customer_name,
            customer_phone=booking.customer_phone,
            customer_email=booking.customer_email,
            visitor_count=booking.visitor_count,
            language=booking.language,
        )


def email_confirmation(event: BookingCreated):
    if not event.customer_email or not email_configured():
        return None
    ok, err = send_email(
        event.customer_email,
        subject=f"Booking #{event.booking_id} received",
        body=(
            f"Hello {event.customer_name},\n\n"
            f"Your booking #{event.booking_id} for {event.visitor_count} visitor(s) has been received.\n"
        ),
    )
    if not ok:
        raise RuntimeError(f"email delivery failed: {err}")
    return True


class BookingNotifier:
    def __init__(self, app=None, collaborators=None):
        self.handlers = {"messaging": email_confirmation}
        self.executor = None
        if collaborators:
            for name, handler in collaborators.items():
                self.register(name, handler)
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        if app.config.get("NOTIFY_ASYNC", True):
            self.executor = ThreadPoolExecutor(
                max_workers=int(app.config.get("NOTIFY_MAX_WORKERS", 4)),
                thread_name_prefix="booking-notify",
            )
        app.extensions["booking_notifier"] = self

    def register(self, name: str, handler: Optional[Callable]):
        if name not in COLLABORATORS:
            raise ValueError(f"unknown collaborator {name!r}")
        if handler is None:
            self.handlers.pop(name, None)
        else:
            self.handlers[name] = handler

    def booking_created(self, event: BookingCreated):
        app = current_app._get_current_object()
        for name in COLLABORATORS:
            handler = self.handlers.get(name)
            if handler is None:
                logger.debug("no %s collaborator configured, skipping booking %s", name, event.booking_id)
                continue
            if self.executor is not None:
                self.executor.submit(self._run, app, name, handler, event)
            else:
                self._run(app, name, handler, event)

    @staticmethod
    def _run(app, name, handler, event):
        with app.app_context():
            try:
                result = handler(event)
            except Exception:
                logger.exception("%s collaborator failed for booking %s", name, event.booking_id)
                return None
        logger.info("%s collaborator done for booking %s", name, event.booking_id)
        return result


def notify_booking_created(event: BookingCreated):
    notifier = current_app.extensions.get("booking_notifier")
    if notifier is None:
        return
    try:
        notifier.booking_created(event)
    except Exception:
        # e.g. executor already shut down
        logger.exception("could not dispatch notifications for booking %s", event.booking_id)
