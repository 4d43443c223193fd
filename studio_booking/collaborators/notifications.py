"""
Coach notifications through the Server酱 push webhook.

Delivery is best-effort: a failed push is logged and reported as False,
and never affects the booking that triggered it. The booking service only
produces events; dispatch_events hands them to a notifier.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional, Protocol

import httpx

from studio_booking.config import settings
from studio_booking.logging_context import set_request_id
from studio_booking.schemas.booking_schema import (
    BookingCancelled,
    BookingCreated,
    BookingEvent,
)

logger = logging.getLogger(__name__)


class NotificationCollaborator(Protocol):
    async def notify_booking_created(self, event: BookingCreated) -> bool: ...

    async def notify_booking_cancelled(self, event: BookingCancelled) -> bool: ...


def _format_price(price: float) -> str:
    return f"{price:g}"


def format_created(event: BookingCreated) -> tuple[str, str, str]:
    """Build (title, markdown body, short summary) for a new booking."""
    booking = event.booking
    station = f"{booking.station_id}号"
    if event.bike_model:
        station += f" ({event.bike_model})"
    lines = [
        f"**预约人**：{booking.member_name}",
        f"**手机号**：{booking.member_phone}",
        f"**预约日期**：{booking.date}",
        f"**时间段**：{booking.start_time} - {booking.end_time}",
        f"**骑行台**：{station}",
        f"**预计收入**：¥{_format_price(event.price)}",
    ]
    if booking.notes:
        lines.append(f"**备注**：{booking.notes}")
    lines += ["", "---", f"⏰ 发送时间：{_local_time(event.occurred_at)}"]
    short = (
        f"{booking.member_name} 预约了 {booking.date} {booking.start_time} 的骑行台"
    )
    return f"📅 新预约：{booking.member_name}", "\n\n".join(lines), short


def format_cancelled(event: BookingCancelled) -> tuple[str, str]:
    """Build (title, markdown body) for a cancellation."""
    booking = event.booking
    lines = [
        f"**预约人**：{booking.member_name}",
        f"**手机号**：{booking.member_phone}",
        f"**预约日期**：{booking.date}",
        f"**时间段**：{booking.start_time}",
        f"**骑行台**：{booking.station_id}号",
        "",
        "---",
        f"⏰ 取消时间：{_local_time(event.occurred_at)}",
    ]
    return f"❌ 预约取消：{booking.member_name}", "\n\n".join(lines)


def _local_time(moment: datetime) -> str:
    return moment.astimezone().strftime("%Y/%m/%d %H:%M:%S")


class PushNotifier:
    """NotificationCollaborator backed by the Server酱 send API."""

    def __init__(
        self,
        send_key: Optional[str] = None,
        api_base: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.send_key = settings.notify.send_key if send_key is None else send_key
        self.api_base = (api_base or settings.notify.api_base).rstrip("/")
        self.timeout = timeout or settings.notify.timeout_sec
        self._client = client

    async def send(self, title: str, content: str = "", short: str = "") -> bool:
        """POST one message. Returns True only when the API answers code 0."""
        if not self.send_key:
            logger.error("Push send key not configured, skipping notification")
            return False

        body = {"title": title}
        if content:
            body["desp"] = content
        if short:
            body["short"] = short
        url = f"{self.api_base}/{self.send_key}.send"

        try:
            if self._client is not None:
                response = await self._client.post(url, data=body, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, data=body)
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Push request failed: %s", e)
            return False

        if not isinstance(result, dict):
            logger.error("Push returned unexpected payload: %r", result)
            return False
        if result.get("code") == 0:
            data = result.get("data")
            logger.info("Push sent: %s", data.get("pushid") if isinstance(data, dict) else None)
            return True
        logger.error("Push rejected: %s", result.get("message"))
        return False

    async def notify_booking_created(self, event: BookingCreated) -> bool:
        title, content, short = format_created(event)
        return await self.send(title, content, short)

    async def notify_booking_cancelled(self, event: BookingCancelled) -> bool:
        title, content = format_cancelled(event)
        return await self.send(title, content)


async def dispatch_events(
    events: Iterable[BookingEvent], notifier: NotificationCollaborator
) -> list[bool]:
    """Deliver events one by one; a failing notifier never raises out of here.

    Each delivery runs under the request id of the submission that
    produced the event.
    """
    results = []
    for event in events:
        set_request_id(event.request_id)
        try:
            if isinstance(event, BookingCreated):
                delivered = await notifier.notify_booking_created(event)
            else:
                delivered = await notifier.notify_booking_cancelled(event)
        except Exception:
            logger.exception("Notifier failed for booking %s", event.booking.id)
            delivered = False
        results.append(delivered)
    return results
