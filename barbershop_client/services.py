"""Booking operations for clients and barbers.

Reads go through cache-first ``FetchCoordinator`` instances; writes go
through the ``OfflineQueue`` so they survive connectivity loss. WhatsApp
notifications are best-effort: they run as detached tasks and never fail the
write that triggered them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from . import whatsapp
from .cache import TieredCache
from .fetch import FetchCoordinator
from .offline import OfflineQueue
from .remote import HttpRecordStore
from .whatsapp import SendResult, WhatsAppClient

logger = logging.getLogger(__name__)

STATUS_PENDING = "pendente"
STATUS_CONFIRMED = "confirmado"
STATUS_CANCELLED = "cancelado"
STATUS_PAID = "pago"
STATUS_DONE = "concluido"


def barber_bookings_key(barber_id: str) -> str:
    return f"bookings_barber_{barber_id}"


def client_bookings_key(client_id: str) -> str:
    return f"bookings_client_{client_id}"


class BookingService:
    def __init__(
        self,
        cache: TieredCache,
        queue: OfflineQueue,
        remote: HttpRecordStore,
        messenger: WhatsAppClient | None = None,
        barbers_collection: str = "barbeiros",
    ) -> None:
        self.cache = cache
        self.queue = queue
        self.remote = remote
        self.messenger = messenger
        self.barbers_collection = barbers_collection
        self.notifications: set[asyncio.Task] = set()

    @property
    def bookings_collection(self) -> str:
        return self.queue.collection

    # Reads

    def barbers(self) -> FetchCoordinator:
        async def _produce() -> list[dict[str, Any]]:
            return await self.remote.list_records(self.barbers_collection)

        return FetchCoordinator(_produce, self.cache, "barbers")

    def client_bookings(self, client_id: str) -> FetchCoordinator:
        async def _produce() -> list[dict[str, Any]]:
            return await self.remote.list_records(
                self.bookings_collection, {"clienteId": client_id}
            )

        return FetchCoordinator(_produce, self.cache, client_bookings_key(client_id))

    def barber_bookings(self, barber_id: str) -> FetchCoordinator:
        async def _produce() -> list[dict[str, Any]]:
            return await self.remote.list_records(
                self.bookings_collection, {"barbeiroId": barber_id}
            )

        return FetchCoordinator(_produce, self.cache, barber_bookings_key(barber_id))

    # Writes

    async def book(
        self,
        client: dict[str, Any],
        barber: dict[str, Any],
        date: str,
        time: str,
    ) -> str:
        """Request an appointment; returns the record id (or offline placeholder)."""
        booking = {
            "clienteId": client.get("id"),
            "clienteNome": client.get("nome"),
            "clienteTelefone": client.get("telefone"),
            "barbeiroId": barber.get("id"),
            "barbeiroNome": barber.get("nome"),
            "data": date,
            "horario": time,
            "status": STATUS_PENDING,
        }
        booking_id = await self.queue.create_record(booking)
        await self._invalidate(booking)
        if barber.get("telefone"):
            self._notify(
                barber["telefone"],
                whatsapp.booking_request_message(barber, client, date, time),
            )
        return booking_id

    async def confirm(self, booking: dict[str, Any]) -> None:
        await self._set_status(booking, STATUS_CONFIRMED)
        if booking.get("clienteTelefone"):
            self._notify(
                booking["clienteTelefone"],
                whatsapp.confirmation_message(
                    {"nome": booking.get("clienteNome", "")},
                    booking.get("data", ""),
                    booking.get("horario", ""),
                    booking.get("barbeiroNome", ""),
                ),
            )

    async def cancel(self, booking: dict[str, Any], reason: str = "") -> None:
        extra = {"motivoCancelamento": reason} if reason else {}
        await self._set_status(booking, STATUS_CANCELLED, **extra)
        if booking.get("clienteTelefone"):
            self._notify(
                booking["clienteTelefone"],
                whatsapp.cancellation_message(
                    {"nome": booking.get("clienteNome", "")},
                    booking.get("data", ""),
                    booking.get("horario", ""),
                    reason,
                ),
            )

    async def mark_paid(self, booking: dict[str, Any]) -> None:
        await self._set_status(booking, STATUS_PAID)

    async def complete(self, booking: dict[str, Any]) -> None:
        await self._set_status(booking, STATUS_DONE)

    def remind(self, booking: dict[str, Any]) -> asyncio.Task | None:
        """Send the client a reminder of an upcoming appointment."""
        if not booking.get("clienteTelefone"):
            return None
        return self._notify(
            booking["clienteTelefone"],
            whatsapp.reminder_message(
                {"nome": booking.get("clienteNome", "")},
                booking.get("data", ""),
                booking.get("horario", ""),
                booking.get("barbeiroNome", ""),
            ),
        )

    async def rate(self, booking: dict[str, Any], rating: int, comment: str = "") -> None:
        if not 1 <= int(rating) <= 5:
            raise ValueError("rating must be between 1 and 5")
        payload = {"avaliacao": int(rating), "comentario": comment}
        await self.queue.update_record(str(booking["id"]), payload)
        await self._invalidate(booking)

    async def _set_status(self, booking: dict[str, Any], status: str, **extra: Any) -> None:
        await self.queue.update_record(str(booking["id"]), {"status": status, **extra})
        await self._invalidate(booking)

    async def _invalidate(self, booking: dict[str, Any]) -> None:
        if booking.get("clienteId"):
            await self.cache.invalidate(client_bookings_key(str(booking["clienteId"])))
        if booking.get("barbeiroId"):
            await self.cache.invalidate(barber_bookings_key(str(booking["barbeiroId"])))

    # Notifications

    def _notify(self, phone: str, message: str) -> asyncio.Task | None:
        """Send a WhatsApp message in the background (best-effort)."""
        if self.messenger is None:
            return None
        task = asyncio.create_task(self._send(phone, message))
        self.notifications.add(task)
        task.add_done_callback(self.notifications.discard)
        return task

    async def _send(self, phone: str, message: str) -> SendResult:
        try:
            result = await self.messenger.send_text_message(phone, message)
        except Exception:
            logger.exception("WhatsApp notification to %s failed", phone)
            return SendResult(sent=False)
        if not result.sent and result.fallback_url:
            logger.info("WhatsApp not sent; direct link: %s", result.fallback_url)
        return result

    async def drain_notifications(self) -> None:
        if self.notifications:
            await asyncio.gather(*list(self.notifications), return_exceptions=True)
