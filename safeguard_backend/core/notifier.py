"""
Best-effort emergency notification to a user's contacts.

Email goes out over SMTP (run in a worker thread), SMS through the Fast2SMS
HTTP API. Each contact/channel pair is attempted once and its outcome
recorded; nothing is retried and nothing raises past `Notifier.dispatch`.
"""

from __future__ import annotations

import asyncio
import logging
import re
import smtplib
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import httpx

from core import config
from core.contacts import get_profile, list_contacts
from core.record_store import ALERT_LOGS, RecordStore
from schemas.contact import EmergencyContact
from schemas.incident import AlertLog
from schemas.notification import ContactDelivery, NotificationReport, NotificationRequest

logger = logging.getLogger(__name__)

DEFAULT_USER_NAME = "A SafeGuard user"

EMAIL_TEXT = """EMERGENCY ALERT!

{name} has triggered an emergency alert ({message}).

Location: {maps_link}
User's phone: {phone}

Please try to contact them immediately or call emergency services."""

EMAIL_HTML = """<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
  <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
    <h1 style="background: #dc2626; color: white; padding: 20px; text-align: center;">EMERGENCY ALERT</h1>
    <p><strong>{name}</strong> has triggered an emergency alert and may need immediate assistance!</p>
    <h3>Location</h3>
    <p>Coordinates: {latitude:.6f}, {longitude:.6f}</p>
    <p><a href="{maps_link}">View location on Google Maps</a></p>
    <h3>Contact</h3>
    <p>User's phone: {phone}</p>
    <h3>What to do</h3>
    <ul>
      <li>Try to contact {name} immediately</li>
      <li>If unable to reach them, consider calling emergency services</li>
      <li>Share the location with authorities if needed</li>
    </ul>
    <p style="font-size: 12px; color: #666;">Automated alert from SafeGuard. Time sent: {sent_at}</p>
  </div>
</body>
</html>"""

SMS_TEXT = (
    "EMERGENCY ALERT! {name} has triggered an emergency alert. "
    "Location: {maps_link}. Please check on them immediately."
)


def maps_link(latitude: float, longitude: float) -> str:
    return f"https://www.google.com/maps?q={latitude},{longitude}"


def normalize_phone(phone: str) -> str:
    """Digits only, drop a leading 91 country code, keep the last 10 digits."""
    digits = re.sub(r"\D", "", phone or "")
    if digits.startswith("91") and len(digits) > 10:
        digits = digits[2:]
    return digits[-10:]


class EmailSender:
    """SMTP delivery with STARTTLS; blocking I/O runs off the event loop."""

    def __init__(
        self,
        host: str = config.SMTP_HOST,
        port: int = config.SMTP_PORT,
        user: str = config.SMTP_USER,
        password: str = config.SMTP_PASSWORD,
        from_email: str = config.SMTP_FROM,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_email = from_email or user

    @property
    def configured(self) -> bool:
        return bool(self.host and self.user)

    async def send(self, to_email: str, subject: str, text: str, html: str) -> None:
        await asyncio.to_thread(self._send_blocking, to_email, subject, text, html)

    def _send_blocking(self, to_email: str, subject: str, text: str, html: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to_email
        msg.attach(MIMEText(text, "plain"))
        msg.attach(MIMEText(html, "html"))

        with smtplib.SMTP(self.host, self.port, timeout=config.HTTP_TIMEOUT) as server:
            server.starttls()
            if self.password:
                server.login(self.user, self.password)
            server.sendmail(self.from_email, [to_email], msg.as_string())


class SmsSender:
    """Fast2SMS quick route."""

    def __init__(
        self,
        api_key: str = config.FAST2SMS_API_KEY,
        url: str = config.FAST2SMS_URL,
        timeout: float = config.HTTP_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.url = url
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def send(self, phone: str, message: str) -> None:
        payload = {
            "route": "q",
            "message": message,
            "language": "english",
            "flash": 0,
            "numbers": phone,
        }
        headers = {"authorization": self.api_key, "Content-Type": "application/json"}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(self.url, json=payload, headers=headers)
        response.raise_for_status()
        result = response.json()
        if result.get("return") is not True:
            raise RuntimeError(f"Fast2SMS rejected the message: {result.get('message') or result}")


class Notifier:
    def __init__(
        self,
        store: RecordStore,
        email: EmailSender | None = None,
        sms: SmsSender | None = None,
    ) -> None:
        self.store = store
        self.email = email if email is not None else EmailSender()
        self.sms = sms if sms is not None else SmsSender()

    async def dispatch(self, request: NotificationRequest) -> NotificationReport:
        """
        Notify every reachable contact of `request.user_id`.
        success is False only when there was someone to notify and nobody got through.
        """
        try:
            return await self._dispatch(request)
        except Exception as exc:
            logger.exception("Notification dispatch failed for user %s", request.user_id)
            return NotificationReport(success=False, message=f"Notification failed: {exc}")

    async def _dispatch(self, request: NotificationRequest) -> NotificationReport:
        contacts = await list_contacts(self.store, request.user_id)
        if not contacts:
            logger.info("No emergency contacts found for user %s", request.user_id)
            return NotificationReport(success=True, message="No emergency contacts to notify")

        profile = await get_profile(self.store, request.user_id)
        name = (profile.full_name if profile else "") or DEFAULT_USER_NAME
        phone = (profile.phone if profile else None) or "Not available"
        link = maps_link(request.latitude, request.longitude)
        fields = {
            "name": name,
            "phone": phone,
            "message": request.message,
            "maps_link": link,
            "latitude": request.latitude,
            "longitude": request.longitude,
            "sent_at": datetime.now(timezone.utc).isoformat(),
        }

        jobs = []
        for contact in contacts:
            if contact.email:
                jobs.append(self._email_one(contact, fields))
            if contact.phone:
                jobs.append(self._sms_one(contact, fields))
        results: list[ContactDelivery] = list(await asyncio.gather(*jobs))

        if request.accident_id:
            await self._log_alerts(request.accident_id, results)

        emails = [r for r in results if r.channel == "email"]
        texts = [r for r in results if r.channel == "sms"]
        parts = []
        if emails:
            parts.append(f"Emails sent to {sum(r.status == 'sent' for r in emails)} of {len(emails)} contacts")
        if texts:
            parts.append(f"SMS sent to {sum(r.status == 'sent' for r in texts)} of {len(texts)} contacts")

        report = NotificationReport(
            success=not results or any(r.status == "sent" for r in results),
            message="; ".join(parts) or "No contacts with a phone or email to notify",
            results=results,
        )
        logger.info("Notifications for user %s: %s", request.user_id, report.message)
        return report

    async def _email_one(self, contact: EmergencyContact, fields: dict) -> ContactDelivery:
        delivery = ContactDelivery(contact_id=contact.id, contact=contact.name, channel="email", status="failed")
        if not self.email.configured:
            delivery.error = "SMTP credentials not configured"
            return delivery
        try:
            await self.email.send(
                str(contact.email),
                f"EMERGENCY ALERT: {fields['name']} needs help!",
                EMAIL_TEXT.format(**fields),
                EMAIL_HTML.format(**fields),
            )
        except Exception as exc:
            logger.warning("Failed to send email to %s: %s", contact.name, exc)
            delivery.error = str(exc)
            return delivery
        delivery.status = "sent"
        return delivery

    async def _sms_one(self, contact: EmergencyContact, fields: dict) -> ContactDelivery:
        delivery = ContactDelivery(contact_id=contact.id, contact=contact.name, channel="sms", status="failed")
        if not self.sms.configured:
            delivery.error = "FAST2SMS_API_KEY not configured"
            return delivery
        try:
            await self.sms.send(normalize_phone(contact.phone or ""), SMS_TEXT.format(**fields))
        except Exception as exc:
            logger.warning("Failed to send SMS to %s: %s", contact.name, exc)
            delivery.error = str(exc)
            return delivery
        delivery.status = "sent"
        return delivery

    async def _log_alerts(self, accident_id: str, results: list[ContactDelivery]) -> None:
        for r in results:
            log = AlertLog(accident_id=accident_id, contact_id=r.contact_id, channel=r.channel, status=r.status)
            await self.store.insert(ALERT_LOGS, log.model_dump())
