"""
Notification service for delivering price alerts over email and push
"""
import asyncio
import logging
import smtplib
from dataclasses import dataclass, field
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Callable, Dict, List, Optional

import aiohttp

from pricewatch.core.config import settings
from pricewatch.services.alert_lifecycle import (
    Alert,
    AlertStatus,
    Channel,
    record_attempt,
    resolve_status,
)
from pricewatch.services.alert_rules import AlertType
from pricewatch.services.repository import Repository
from pricewatch.services.user_directory import NotificationPreferences, UserContact, UserDirectory

logger = logging.getLogger(__name__)


def build_email_subject(alert: Alert) -> str:
    name = alert.product.name
    if alert.alert_type == AlertType.PRICE_DROP:
        return f"{name} - {alert.drop_percentage or 0:.0f}% Price Drop!"
    if alert.alert_type == AlertType.TARGET_PRICE:
        return f"{name} - Target Price Reached!"
    if alert.alert_type == AlertType.BACK_IN_STOCK:
        return f"{name} - Back in Stock!"
    return f"Price Alert: {name}"


def build_email_body(alert: Alert, contact: UserContact) -> str:
    greeting = f"Hi {contact.display_name},\n\n" if contact.display_name else ""
    brand = f"Brand: {alert.product.brand}\n" if alert.product.brand else ""
    savings = ""
    if alert.alert_type == AlertType.PRICE_DROP and alert.previous_price:
        percent = alert.savings_amount / alert.previous_price * 100
        savings = f"\nYou save ${alert.savings_amount:.2f} ({percent:.0f}% off)!\n"

    return f"""{greeting}Price Watch Alert

{alert.message}

Product: {alert.product.name}
{brand}Current Price: ${alert.current_price:.2f}
Available at: {alert.source.name}
{savings}
View Product: {alert.source.url}

You're receiving this because you have price alerts enabled for this item.
""".strip()


def build_push_title(alert: Alert) -> str:
    titles = {
        AlertType.PRICE_DROP: "Price Drop Alert!",
        AlertType.TARGET_PRICE: "Target Price Reached!",
        AlertType.BACK_IN_STOCK: "Back in Stock!",
    }
    return titles.get(alert.alert_type, "Price Alert")


def build_push_body(alert: Alert) -> str:
    name = alert.product.name
    price = f"${alert.current_price:.2f}"
    if alert.alert_type == AlertType.PRICE_DROP:
        return f"{name} dropped {alert.drop_percentage or 0:.0f}% to {price}"
    if alert.alert_type == AlertType.TARGET_PRICE:
        return f"{name} is now {price}"
    if alert.alert_type == AlertType.BACK_IN_STOCK:
        return f"{name} is available for {price}"
    return f"{name} - {price}"


class EmailSender:
    """SMTP email delivery"""

    def __init__(self):
        self.email_enabled = settings.EMAIL_ENABLED
        self.email_config = {
            "host": settings.EMAIL_HOST,
            "port": settings.EMAIL_PORT,
            "user": settings.EMAIL_USER,
            "password": settings.EMAIL_PASSWORD,
            "from": settings.get_email_sender(),
        }

    def is_configured(self) -> bool:
        return self.email_enabled and all([
            self.email_config["user"],
            self.email_config["password"],
            self.email_config["host"]
        ])

    async def send_email(self, contact: UserContact, subject: str, body: str) -> bool:
        """
        Send one email

        Args:
            contact: Recipient
            subject: Email subject
            body: Plain-text body

        Returns:
            True if sent successfully, False otherwise
        """
        if not self.is_configured():
            logger.warning("Email notifications not configured")
            return False
        if not contact.email:
            logger.warning(f"No email address for user {contact.user_id}")
            return False

        try:
            await asyncio.to_thread(self._send_smtp, contact.email, subject, body)
            logger.info(f"Email sent successfully: {subject}")
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Error sending email: {e}")
            return False

    def _send_smtp(self, to_addr: str, subject: str, body: str):
        msg = MIMEMultipart()
        msg['From'] = self.email_config["from"]
        msg['To'] = to_addr
        msg['Subject'] = subject
        msg.attach(MIMEText(body, 'plain'))

        with smtplib.SMTP(self.email_config["host"], self.email_config["port"], timeout=30) as server:
            server.starttls()
            server.login(self.email_config["user"], self.email_config["password"])
            server.sendmail(self.email_config["from"], [to_addr], msg.as_string())


class PushSender:
    """Push delivery through an HTTP webhook (FCM/APNS relay)"""

    def __init__(self):
        self.push_enabled = settings.PUSH_ENABLED
        self.webhook_url = settings.PUSH_WEBHOOK_URL
        self.auth_token = settings.PUSH_AUTH_TOKEN
        self.timeout = aiohttp.ClientTimeout(total=max(settings.PUSH_TIMEOUT_SECONDS, 1))
        self._session: Optional[aiohttp.ClientSession] = None

    def is_configured(self) -> bool:
        return bool(self.push_enabled and self.webhook_url)

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def send_push(self, contact: UserContact, title: str, body: str, data: Dict[str, Any]) -> bool:
        if not self.is_configured():
            logger.warning("Push notifications not configured")
            return False

        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        payload = {"user_id": contact.user_id, "title": title, "body": body, "data": data}

        try:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession()
            async with self._session.post(
                self.webhook_url, json=payload, headers=headers, timeout=self.timeout
            ) as response:
                if response.status >= 300:
                    logger.error(f"Push webhook returned status {response.status}")
                    return False
            logger.info(f"Push sent successfully: {title}")
            return True
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Error sending push notification: {e}")
            return False


@dataclass
class DispatchResult:
    """Outcome of one dispatch pass over an alert's channels"""
    alert: Alert
    attempted: List[Channel] = field(default_factory=list)
    delivered: List[Channel] = field(default_factory=list)
    failed: List[Channel] = field(default_factory=list)
    skipped: List[Channel] = field(default_factory=list)

    @property
    def status(self) -> AlertStatus:
        return self.alert.status


class NotificationDispatcher:
    """Sends alerts through enabled channels and keeps their delivery bookkeeping"""

    def __init__(
        self,
        user_directory: UserDirectory,
        email_sender: Optional[EmailSender] = None,
        push_sender: Optional[PushSender] = None,
        repository: Optional[Repository] = None,
        max_attempts: Optional[int] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.user_directory = user_directory
        self.email_sender = email_sender
        self.push_sender = push_sender
        self.repository = repository
        self.max_attempts = max_attempts if max_attempts is not None else settings.NOTIFICATION_MAX_ATTEMPTS
        self.clock = clock

        logger.info("Notification dispatcher initialized")

    def transport_ready(self, channel: Channel) -> bool:
        sender = self.email_sender if channel == Channel.EMAIL else self.push_sender
        return sender is not None and sender.is_configured()

    def enabled_channels(self, alert: Alert, preferences: NotificationPreferences) -> List[Channel]:
        """Channels both the user and the item asked for, with a configured transport behind them"""
        channels = []
        if preferences.email_enabled and Channel.EMAIL in alert.requested_channels:
            channels.append(Channel.EMAIL)
        if preferences.push_enabled and Channel.PUSH in alert.requested_channels:
            channels.append(Channel.PUSH)
        return [channel for channel in channels if self.transport_ready(channel)]

    async def dispatch(self, alert: Alert) -> DispatchResult:
        """
        Make one delivery attempt on every enabled channel that still needs one.

        Channels already delivered or out of attempts are left alone. After the
        attempts the alert status is resolved (see ``resolve_status``). The
        returned result carries the updated alert; saving it is up to the caller.
        """
        if alert.is_terminal:
            return DispatchResult(alert=alert, skipped=list(Channel))

        preferences = await self.user_directory.get_preferences(alert.user_id)
        contact = await self.user_directory.get_contact(alert.user_id)
        enabled = self.enabled_channels(alert, preferences)
        result = DispatchResult(alert=alert, skipped=[c for c in Channel if c not in enabled])

        due = [
            channel for channel in enabled
            if not alert.channel_state(channel).is_final(self.max_attempts)
        ]
        outcomes = await asyncio.gather(*(self._send(channel, alert, contact) for channel in due))

        now = self.clock()
        for channel, delivered in zip(due, outcomes):
            alert = record_attempt(alert, channel, delivered, now, self.max_attempts)
            result.attempted.append(channel)
            if delivered:
                result.delivered.append(channel)
            else:
                result.failed.append(channel)
                logger.warning(
                    f"{channel.value} notification failed for alert {alert.id} "
                    f"(attempt {alert.channel_state(channel).attempts}/{self.max_attempts})"
                )

        result.alert = resolve_status(alert, enabled, self.max_attempts)
        logger.info(
            f"Alert {alert.id} dispatch: delivered={[c.value for c in result.delivered]} "
            f"failed={[c.value for c in result.failed]} status={result.alert.status.value}"
        )
        return result

    async def _send(self, channel: Channel, alert: Alert, contact: UserContact) -> bool:
        try:
            if channel == Channel.EMAIL:
                if self.email_sender is None:
                    return False
                return bool(await self.email_sender.send_email(
                    contact, build_email_subject(alert), build_email_body(alert, contact)
                ))

            if self.push_sender is None:
                return False
            data = {
                "alertId": str(alert.id),
                "alertType": alert.alert_type.value,
                "itemId": str(alert.item_id),
                "price": f"{alert.current_price:.2f}",
            }
            if self.repository is not None:
                data["badge"] = await self.repository.count_unread_alerts(alert.user_id)
            return bool(await self.push_sender.send_push(
                contact, build_push_title(alert), build_push_body(alert), data
            ))
        except Exception as e:
            logger.error(f"Error sending {channel.value} notification for alert {alert.id}: {e}")
            return False
