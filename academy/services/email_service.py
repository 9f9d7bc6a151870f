"""
SMTP Email Service

Sends email over SMTP with aiosmtplib. Used by the transactional email
service when ``EMAIL_PROVIDER=smtp`` (local development, self-hosted relays).
"""

import os
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Optional, Dict, Any, List

import aiosmtplib

logger = logging.getLogger(__name__)


class EmailServiceConfig:
    """SMTP configuration from environment variables."""

    def __init__(self):
        self.smtp_host = os.getenv('SMTP_HOST', 'localhost')
        self.smtp_port = int(os.getenv('SMTP_PORT', '587'))
        self.smtp_username = os.getenv('SMTP_USERNAME', '')
        self.smtp_password = os.getenv('SMTP_PASSWORD', '')
        self.smtp_use_tls = os.getenv('SMTP_USE_TLS', 'true').lower() == 'true'
        self.smtp_use_ssl = os.getenv('SMTP_USE_SSL', 'false').lower() == 'true'
        self.from_email = os.getenv('FROM_EMAIL', 'noreply@academy.ge')
        self.from_name = os.getenv('FROM_NAME', 'Academy')
        self.reply_to_email = os.getenv('REPLY_TO_EMAIL', '')

    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_port and self.from_email)

    def validate(self) -> List[str]:
        errors = []
        if not self.smtp_host:
            errors.append("SMTP_HOST is required")
        if not self.smtp_port or self.smtp_port <= 0:
            errors.append("SMTP_PORT must be a positive integer")
        if not self.from_email:
            errors.append("FROM_EMAIL is required")
        if self.smtp_use_ssl and self.smtp_use_tls:
            errors.append("Cannot use both SSL and TLS simultaneously")
        return errors


class EmailService:
    """Service for sending emails via SMTP."""

    def __init__(self, config: Optional[EmailServiceConfig] = None):
        self.config = config or EmailServiceConfig()

    def build_message(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
        from_name: Optional[str] = None,
        from_email: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> MIMEMultipart:
        message = MIMEMultipart('alternative')
        sender = from_email or self.config.from_email
        message['From'] = f"{from_name or self.config.from_name} <{sender}>"
        message['To'] = to_email
        message['Subject'] = subject
        message['Message-ID'] = make_msgid(domain=sender.split('@')[-1])
        if reply_to or self.config.reply_to_email:
            message['Reply-To'] = reply_to or self.config.reply_to_email
        if text_content:
            message.attach(MIMEText(text_content, 'plain', 'utf-8'))
        message.attach(MIMEText(html_content, 'html', 'utf-8'))
        return message

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
        from_name: Optional[str] = None,
        from_email: Optional[str] = None,
        reply_to: Optional[str] = None,
        **kwargs,
    ) -> Dict[str, Any]:
        """
        Send an email via SMTP.

        Returns:
            Dict with 'success', 'provider', 'message_id' and 'error' keys
        """
        if not self.config.is_configured():
            return {'success': False, 'provider': 'smtp', 'error': 'Email service not configured'}

        try:
            message = self.build_message(
                to_email, subject, html_content, text_content,
                from_name=from_name, from_email=from_email, reply_to=reply_to,
            )
            await self._send_via_smtp(message)
            logger.info(f"Email sent successfully to {to_email}: {subject}")
            return {'success': True, 'provider': 'smtp', 'message_id': message['Message-ID']}
        except Exception as e:
            error_msg = f"Failed to send email to {to_email}: {str(e)}"
            logger.error(error_msg)
            return {'success': False, 'provider': 'smtp', 'error': error_msg}

    async def _send_via_smtp(self, message: MIMEMultipart):
        smtp_kwargs = {
            'hostname': self.config.smtp_host,
            'port': self.config.smtp_port,
            'start_tls': self.config.smtp_use_tls,
        }
        if self.config.smtp_use_ssl:
            smtp_kwargs['start_tls'] = False
            smtp_kwargs['use_tls'] = True
            smtp_kwargs['port'] = self.config.smtp_port or 465

        async with aiosmtplib.SMTP(**smtp_kwargs) as smtp:
            if self.config.smtp_username and self.config.smtp_password:
                await smtp.login(self.config.smtp_username, self.config.smtp_password)
            return await smtp.send_message(message)
