"""
Alert Service
Sends service health alerts via email and Slack
"""
import smtplib
import asyncio
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Any, Dict, List, Optional
import aiohttp
from dataclasses import dataclass, field

from app.config import get_settings
from app.utils.helpers import utcnow
from app.utils.logger import log
from app.utils.retry import calculate_backoff, is_retryable_error

settings = get_settings()


@dataclass
class DeliveryResult:
    """Tracks delivery attempt results for auditing."""
    success: bool = False
    channel: str = ""
    attempts: int = 0
    total_delay_seconds: float = 0.0
    errors: List[str] = field(default_factory=list)
    final_error: Optional[str] = None


@dataclass
class AlertMessage:
    """One rendered notification batch"""
    subject: str
    text: str
    html: str
    priority: str = "critical"
    fields: Dict[str, Any] = field(default_factory=dict)


def render_health_alert(transitions: List, timestamp: Optional[str] = None) -> AlertMessage:
    """
    Render a batch of down/recovered transitions as one message

    The subject leads with outages when the batch has any.
    """
    down = [t for t in transitions if t.type == "down"]
    recovered = [t for t in transitions if t.type == "recovered"]
    timestamp = timestamp or utcnow().strftime("%Y-%m-%d %H:%M:%S UTC")

    if down:
        plural = "s" if len(down) > 1 else ""
        subject = f"Service outage: {len(down)} service{plural} unavailable"
        priority = "critical"
    else:
        plural = "s" if len(recovered) > 1 else ""
        subject = f"Services recovered: {len(recovered)} service{plural} back online"
        priority = "low"

    lines = []
    if down:
        lines.append("Services down:")
        for t in down:
            line = f"  - {t.display_name}: {t.status}"
            if t.message:
                line += f" ({t.message})"
            lines.append(line)
    if recovered:
        lines.append("Services recovered:")
        for t in recovered:
            line = f"  - {t.display_name} is back online"
            if t.downtime_minutes:
                line += f" after {t.downtime_minutes:.0f} minutes"
            lines.append(line)
    lines.append(f"Checked at: {timestamp}")
    if settings.status_page_url:
        lines.append(f"Status page: {settings.status_page_url}")
    text = "\n".join(lines)

    html = f"""
<!DOCTYPE html>
<html>
<head>
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; }}
        .down {{ background: #fef2f2; border: 1px solid #ef4444; border-radius: 8px; padding: 15px; margin: 15px 0; }}
        .recovered {{ background: #f0fdf4; border: 1px solid #22c55e; border-radius: 8px; padding: 15px; margin: 15px 0; }}
        .timestamp {{ color: #64748b; font-size: 12px; }}
    </style>
</head>
<body>
    <h2>{subject}</h2>
"""
    if down:
        html += '<div class="down"><h3>Services down</h3>'
        for t in down:
            html += f"<p><strong>{t.display_name}</strong><br>Status: {t.status}"
            if t.message:
                html += f"<br><small>{t.message}</small>"
            html += "</p>"
        html += "</div>"
    if recovered:
        html += '<div class="recovered"><h3>Services recovered</h3>'
        for t in recovered:
            html += f"<p><strong>{t.display_name}</strong><br>Back online"
            if t.downtime_minutes:
                html += f"<br><small>Downtime: {t.downtime_minutes:.0f} minutes</small>"
            html += "</p>"
        html += "</div>"
    html += f'<p class="timestamp">Checked at: {timestamp}</p>'
    if settings.status_page_url:
        html += f'<p><a href="{settings.status_page_url}">View status page</a></p>'
    html += "\n</body>\n</html>\n"

    return AlertMessage(
        subject=subject,
        text=text,
        html=html,
        priority=priority,
        fields={"down": len(down), "recovered": len(recovered)},
    )


class AlertService:
    """
    Manages automated alerts and notifications with retry logic.
    """

    # Retry configuration
    RETRY_MAX_ATTEMPTS = 3
    RETRY_BASE_DELAY = 2.0  # seconds
    RETRY_MAX_DELAY = 30.0  # seconds

    def __init__(self):
        self.smtp_configured = all([
            settings.smtp_host,
            settings.smtp_user,
            settings.smtp_password
        ])

        self.slack_configured = bool(settings.slack_webhook_url)

        # Track delivery stats
        self.total_sent = 0
        self.total_failed = 0
        self.total_retries = 0

    async def send_health_alerts(self, transitions: List, timestamp: Optional[str] = None) -> Dict[str, Any]:
        """
        Send one batch of service transitions via all available channels.

        Returns:
            Dict with keys: success (bool, any channel delivered), results
            (channel -> delivery details), total_attempts, total_delay_seconds
        """
        message = render_health_alert(transitions, timestamp)
        log.warning(f"Health alert: {message.subject}")

        results = {}
        any_success = False

        if self.smtp_configured:
            recipients = sorted({r for t in transitions for r in getattr(t, "recipients", [])})
            email_result = await self.send_email_alert(message, recipients)
            results['email'] = email_result
            any_success = any_success or email_result.success

        if self.slack_configured:
            slack_result = await self.send_slack_alert(message)
            results['slack'] = slack_result
            any_success = any_success or slack_result.success

        if not results:
            log.warning("No alert channels configured, health alert not delivered")

        total_attempts = sum(r.attempts for r in results.values())
        total_delay = sum(r.total_delay_seconds for r in results.values())

        return {
            'success': any_success,
            'results': {ch: self._delivery_result_to_dict(r) for ch, r in results.items()},
            'total_attempts': total_attempts,
            'total_delay_seconds': total_delay
        }

    def _delivery_result_to_dict(self, result: DeliveryResult) -> Dict[str, Any]:
        """Convert DeliveryResult to dict for storage."""
        return {
            'success': result.success,
            'attempts': result.attempts,
            'total_delay_seconds': result.total_delay_seconds,
            'errors': result.errors[:5],  # Cap at 5 errors
            'final_error': result.final_error
        }

    @staticmethod
    def email_recipients(recipients: Optional[List[str]] = None) -> List[str]:
        """Subscriber addresses plus the configured ops address, deduplicated"""
        addresses = list(recipients or [])
        if settings.alert_email_to:
            addresses.extend(a.strip() for a in settings.alert_email_to.split(","))
        return sorted({a for a in addresses if a})

    async def send_email_alert(self, message: AlertMessage, recipients: Optional[List[str]] = None) -> DeliveryResult:
        """
        Send email alert with retry logic.

        Goes to the given subscriber addresses plus ``alert_email_to``.
        Retries on transient errors (connection, timeout, SMTP 4xx) with exponential backoff.
        """
        result = DeliveryResult(channel='email')

        if not self.smtp_configured:
            log.warning("Email not configured, skipping email alert")
            result.final_error = "Email not configured"
            return result

        to_addresses = self.email_recipients(recipients)
        if not to_addresses:
            log.warning("No email recipients for health alert")
            result.final_error = "No email recipients"
            return result

        for attempt in range(1, self.RETRY_MAX_ATTEMPTS + 1):
            result.attempts = attempt

            try:
                msg = MIMEMultipart('alternative')
                msg['Subject'] = message.subject
                msg['From'] = settings.alert_email_from or settings.smtp_user
                msg['To'] = ", ".join(to_addresses)

                msg.attach(MIMEText(message.text, 'plain'))
                msg.attach(MIMEText(message.html, 'html'))

                # smtplib blocks, keep it off the event loop
                await asyncio.to_thread(self._deliver_email, msg)

                result.success = True
                self.total_sent += 1
                if attempt > 1:
                    self.total_retries += (attempt - 1)
                    log.info(f"Email alert sent after {attempt} attempts: {message.subject}")
                else:
                    log.info(f"Email alert sent: {message.subject}")
                return result

            except (smtplib.SMTPException, OSError) as e:
                error_str = f"{type(e).__name__}: {str(e)}"
                result.errors.append(error_str)
                result.final_error = error_str

                if attempt >= self.RETRY_MAX_ATTEMPTS or not self._is_retryable_email_error(e):
                    self.total_failed += 1
                    log.error(f"Email alert failed after {attempt} attempts: {error_str}")
                    return result

                delay = calculate_backoff(
                    attempt,
                    base_delay=self.RETRY_BASE_DELAY,
                    max_delay=self.RETRY_MAX_DELAY
                )
                result.total_delay_seconds += delay

                log.warning(f"Email attempt {attempt} failed: {e}. Retrying in {delay:.1f}s...")
                await asyncio.sleep(delay)

        self.total_failed += 1
        return result

    def _deliver_email(self, msg: MIMEMultipart):
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=30) as server:
            server.starttls()
            server.login(settings.smtp_user, settings.smtp_password)
            server.send_message(msg)

    def _is_retryable_email_error(self, error: Exception) -> bool:
        """Check if email error is retryable."""
        # SMTP temporary failures (4xx) are retryable
        if isinstance(error, smtplib.SMTPResponseException):
            return 400 <= error.smtp_code < 500

        if isinstance(error, OSError):
            return True

        error_str = str(error).lower()
        retryable_patterns = ['timeout', 'connection', 'temporary', 'try again', 'unavailable']
        return any(pattern in error_str for pattern in retryable_patterns)

    async def send_slack_alert(self, message: AlertMessage) -> DeliveryResult:
        """
        Send Slack alert with retry logic.

        Retries on transient errors (connection, timeout, 429, 5xx) with exponential backoff.
        """
        result = DeliveryResult(channel='slack')

        if not self.slack_configured:
            log.warning("Slack not configured, skipping Slack alert")
            result.final_error = "Slack not configured"
            return result

        colors = {
            'critical': '#dc3545',
            'high': '#fd7e14',
            'medium': '#ffc107',
            'low': '#28a745'
        }

        payload = {
            "attachments": [
                {
                    "color": colors.get(message.priority, '#6c757d'),
                    "title": message.subject,
                    "text": message.text,
                    "fields": [
                        {
                            "title": key.replace('_', ' ').title(),
                            "value": str(value),
                            "short": True
                        }
                        for key, value in list(message.fields.items())[:5]
                    ],
                    "footer": settings.app_name
                }
            ]
        }

        for attempt in range(1, self.RETRY_MAX_ATTEMPTS + 1):
            result.attempts = attempt

            try:
                async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=30)) as session:
                    async with session.post(settings.slack_webhook_url, json=payload) as response:
                        if response.status == 200:
                            result.success = True
                            self.total_sent += 1
                            if attempt > 1:
                                self.total_retries += (attempt - 1)
                                log.info(f"Slack alert sent after {attempt} attempts: {message.subject}")
                            else:
                                log.info(f"Slack alert sent: {message.subject}")
                            return result

                        if self._is_retryable_slack_status(response.status):
                            error_str = f"HTTP {response.status}"
                            result.errors.append(error_str)

                            if attempt >= self.RETRY_MAX_ATTEMPTS:
                                result.final_error = error_str
                                self.total_failed += 1
                                log.error(f"Slack alert failed after {attempt} attempts: {error_str}")
                                return result

                            delay = calculate_backoff(
                                attempt,
                                base_delay=self.RETRY_BASE_DELAY,
                                max_delay=self.RETRY_MAX_DELAY
                            )
                            result.total_delay_seconds += delay

                            log.warning(f"Slack attempt {attempt} failed: {error_str}. Retrying in {delay:.1f}s...")
                            await asyncio.sleep(delay)
                            continue

                        # Non-retryable error (4xx except 429)
                        result.final_error = f"HTTP {response.status}"
                        self.total_failed += 1
                        log.error(f"Slack alert failed with status {response.status}")
                        return result

            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                error_str = f"{type(e).__name__}: {str(e)}"
                result.errors.append(error_str)

                if attempt >= self.RETRY_MAX_ATTEMPTS or not is_retryable_error(e):
                    result.final_error = error_str
                    self.total_failed += 1
                    log.error(f"Slack alert failed after {attempt} attempts: {error_str}")
                    return result

                delay = calculate_backoff(
                    attempt,
                    base_delay=self.RETRY_BASE_DELAY,
                    max_delay=self.RETRY_MAX_DELAY
                )
                result.total_delay_seconds += delay

                log.warning(f"Slack attempt {attempt} failed: {e}. Retrying in {delay:.1f}s...")
                await asyncio.sleep(delay)

        self.total_failed += 1
        return result

    def _is_retryable_slack_status(self, status_code: int) -> bool:
        """Check if HTTP status code warrants a retry."""
        # 429 (rate limit) and 5xx (server errors) are retryable
        return status_code == 429 or status_code >= 500

    def get_delivery_stats(self) -> Dict[str, Any]:
        """
        Get delivery statistics for monitoring.
        """
        total_attempts = self.total_sent + self.total_failed
        success_rate = (self.total_sent / total_attempts * 100) if total_attempts > 0 else 0.0

        return {
            "total_sent": self.total_sent,
            "total_failed": self.total_failed,
            "total_retries": self.total_retries,
            "total_attempts": total_attempts,
            "success_rate": round(success_rate, 2),
            "retry_config": {
                "max_attempts": self.RETRY_MAX_ATTEMPTS,
                "base_delay": self.RETRY_BASE_DELAY,
                "max_delay": self.RETRY_MAX_DELAY
            },
            "channels_configured": {
                "email": self.smtp_configured,
                "slack": self.slack_configured
            }
        }
