"""
Transactional Email Service

Integrates with transactional email providers for notification, receipt and
campaign delivery. Provider clients never raise: every send returns a result
dict with 'success', 'provider', 'message_id' and 'error' keys.

Supports:
- Postmark (default; separate server token and stream for marketing mail)
- Resend
- SendGrid
- Mailgun
- SMTP (delegates to the aiosmtplib email service)
"""

import os
import re
import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any, List

import requests
from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / 'templates' / 'email'
POSTMARK_API_URL = 'https://api.postmarkapp.com'


class EmailProvider(Enum):
    """Supported email service providers."""
    POSTMARK = "postmark"
    RESEND = "resend"
    SENDGRID = "sendgrid"
    MAILGUN = "mailgun"
    SMTP = "smtp"


class TemplateRenderError(Exception):
    """Raised when an email template is missing or fails to render."""


class TransactionalEmailConfig:
    """Configuration for transactional email services."""

    def __init__(self):
        self.provider = EmailProvider(os.getenv('EMAIL_PROVIDER', 'postmark').lower())

        self.from_email = os.getenv('FROM_EMAIL', 'noreply@academy.ge')
        self.from_name = os.getenv('FROM_NAME', 'Academy')
        self.reply_to_email = os.getenv('REPLY_TO_EMAIL', '')

        self.postmark_server_token = os.getenv('POSTMARK_SERVER_TOKEN', '')
        self.postmark_message_stream = os.getenv('POSTMARK_MESSAGE_STREAM', 'outbound')
        self.resend_api_key = os.getenv('RESEND_API_KEY', '')
        self.sendgrid_api_key = os.getenv('SENDGRID_API_KEY', '')
        self.mailgun_api_key = os.getenv('MAILGUN_API_KEY', '')
        self.mailgun_domain = os.getenv('MAILGUN_DOMAIN', '')

        self.template_dir = os.getenv('EMAIL_TEMPLATE_DIR', str(DEFAULT_TEMPLATE_DIR))

    @classmethod
    def marketing(cls) -> "TransactionalEmailConfig":
        """Postmark config for broadcast mail (campaigns)."""
        config = cls()
        config.provider = EmailProvider.POSTMARK
        config.postmark_server_token = os.getenv(
            'POSTMARK_MARKETING_SERVER_TOKEN', config.postmark_server_token
        )
        config.postmark_message_stream = os.getenv('POSTMARK_MARKETING_STREAM', 'broadcast')
        return config

    def is_configured(self) -> bool:
        """Check if the selected provider is properly configured."""
        if not self.from_email:
            return False
        if self.provider == EmailProvider.POSTMARK:
            return bool(self.postmark_server_token)
        if self.provider == EmailProvider.RESEND:
            return bool(self.resend_api_key)
        if self.provider == EmailProvider.SENDGRID:
            return bool(self.sendgrid_api_key)
        if self.provider == EmailProvider.MAILGUN:
            return bool(self.mailgun_api_key and self.mailgun_domain)
        if self.provider == EmailProvider.SMTP:
            return bool(os.getenv('SMTP_HOST'))
        return False

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []
        if not self.from_email:
            errors.append("FROM_EMAIL is required")

        if self.provider == EmailProvider.POSTMARK:
            if not self.postmark_server_token:
                errors.append("POSTMARK_SERVER_TOKEN is required for Postmark provider")
        elif self.provider == EmailProvider.RESEND:
            if not self.resend_api_key:
                errors.append("RESEND_API_KEY is required for Resend provider")
        elif self.provider == EmailProvider.SENDGRID:
            if not self.sendgrid_api_key:
                errors.append("SENDGRID_API_KEY is required for SendGrid provider")
        elif self.provider == EmailProvider.MAILGUN:
            if not self.mailgun_api_key:
                errors.append("MAILGUN_API_KEY is required for Mailgun provider")
            if not self.mailgun_domain:
                errors.append("MAILGUN_DOMAIN is required for Mailgun provider")
        elif self.provider == EmailProvider.SMTP:
            if not os.getenv('SMTP_HOST'):
                errors.append("SMTP_HOST is required for SMTP provider")
        return errors

    def sender(self, from_name: Optional[str] = None, from_email: Optional[str] = None) -> str:
        return f"{from_name or self.from_name} <{from_email or self.from_email}>"


class PostmarkEmailService:
    """Email service implementation for Postmark."""

    def __init__(self, config: TransactionalEmailConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.http = session or requests.Session()

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
        from_name: Optional[str] = None,
        from_email: Optional[str] = None,
        reply_to: Optional[str] = None,
        message_stream: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        try:
            payload = {
                "From": self.config.sender(from_name, from_email),
                "To": to_email,
                "Subject": subject,
                "HtmlBody": html_content,
                "MessageStream": message_stream or self.config.postmark_message_stream,
                "TrackOpens": True,
            }
            if text_content:
                payload["TextBody"] = text_content
            if reply_to or self.config.reply_to_email:
                payload["ReplyTo"] = reply_to or self.config.reply_to_email
            if headers:
                payload["Headers"] = [{"Name": k, "Value": v} for k, v in headers.items()]

            response = self.http.post(
                f"{POSTMARK_API_URL}/email",
                json=payload,
                headers={
                    "Accept": "application/json",
                    "X-Postmark-Server-Token": self.config.postmark_server_token,
                },
                timeout=15,
            )
            result = response.json() if response.content else {}
            if response.status_code == 200 and result.get('ErrorCode', 0) == 0:
                return {
                    'success': True,
                    'provider': 'postmark',
                    'message_id': result.get('MessageID', ''),
                    'provider_response': result,
                }
            return {
                'success': False,
                'provider': 'postmark',
                'error': f"HTTP {response.status_code}: {result.get('Message') or response.text}",
            }
        except Exception as e:
            return {'success': False, 'provider': 'postmark', 'error': str(e)}


class ResendEmailService:
    """Email service implementation for Resend."""

    def __init__(self, config: TransactionalEmailConfig):
        self.config = config
        import resend
        resend.api_key = self.config.resend_api_key
        self.client = resend

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
        try:
            email_data = {
                "from": self.config.sender(from_name, from_email),
                "to": [to_email],
                "subject": subject,
                "html": html_content,
            }
            if text_content:
                email_data["text"] = text_content
            if reply_to or self.config.reply_to_email:
                email_data["reply_to"] = reply_to or self.config.reply_to_email

            result = self.client.Emails.send(email_data)
            return {
                'success': True,
                'provider': 'resend',
                'message_id': result['id'],
                'provider_response': result,
            }
        except Exception as e:
            return {'success': False, 'provider': 'resend', 'error': str(e)}


class SendGridEmailService:
    """Email service implementation for SendGrid."""

    def __init__(self, config: TransactionalEmailConfig):
        self.config = config
        from sendgrid import SendGridAPIClient
        self.client = SendGridAPIClient(api_key=self.config.sendgrid_api_key)

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
        try:
            from sendgrid.helpers.mail import Mail, From, To, Subject, HtmlContent, PlainTextContent

            mail = Mail(
                from_email=From(from_email or self.config.from_email, from_name or self.config.from_name),
                to_emails=To(to_email),
                subject=Subject(subject),
                html_content=HtmlContent(html_content),
            )
            if text_content:
                mail.plain_text_content = PlainTextContent(text_content)
            if reply_to or self.config.reply_to_email:
                mail.reply_to = reply_to or self.config.reply_to_email

            response = self.client.send(mail)
            return {
                'success': True,
                'provider': 'sendgrid',
                'message_id': response.headers.get('X-Message-Id', ''),
                'status_code': response.status_code,
            }
        except Exception as e:
            return {'success': False, 'provider': 'sendgrid', 'error': str(e)}


class MailgunEmailService:
    """Email service implementation for Mailgun."""

    def __init__(self, config: TransactionalEmailConfig):
        self.config = config
        self.base_url = f"https://api.mailgun.net/v3/{self.config.mailgun_domain}"

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
        try:
            data = {
                "from": self.config.sender(from_name, from_email),
                "to": to_email,
                "subject": subject,
                "html": html_content,
            }
            if text_content:
                data["text"] = text_content
            if reply_to or self.config.reply_to_email:
                data["h:Reply-To"] = reply_to or self.config.reply_to_email

            response = requests.post(
                f"{self.base_url}/messages",
                auth=("api", self.config.mailgun_api_key),
                data=data,
                timeout=15,
            )
            if response.status_code == 200:
                result = response.json()
                return {
                    'success': True,
                    'provider': 'mailgun',
                    'message_id': result.get('id', ''),
                    'provider_response': result,
                }
            return {
                'success': False,
                'provider': 'mailgun',
                'error': f"HTTP {response.status_code}: {response.text}",
            }
        except Exception as e:
            return {'success': False, 'provider': 'mailgun', 'error': str(e)}


class TransactionalEmailService:
    """Main transactional email service that delegates to provider implementations."""

    def __init__(self, config: Optional[TransactionalEmailConfig] = None):
        self.config = config or TransactionalEmailConfig()
        self.provider_service = None
        self.template_env = None
        self._setup_provider()
        self._setup_templates()

    def _setup_provider(self):
        if not self.config.is_configured():
            logger.warning("Email service not configured")
            return

        try:
            if self.config.provider == EmailProvider.POSTMARK:
                self.provider_service = PostmarkEmailService(self.config)
            elif self.config.provider == EmailProvider.RESEND:
                self.provider_service = ResendEmailService(self.config)
            elif self.config.provider == EmailProvider.SENDGRID:
                self.provider_service = SendGridEmailService(self.config)
            elif self.config.provider == EmailProvider.MAILGUN:
                self.provider_service = MailgunEmailService(self.config)
            elif self.config.provider == EmailProvider.SMTP:
                from academy.services.email_service import EmailService
                self.provider_service = EmailService()
            logger.info(f"Initialized {self.config.provider.value} email service")
        except Exception as e:
            logger.error(f"Failed to initialize email provider {self.config.provider}: {e}")

    def _setup_templates(self):
        template_path = Path(self.config.template_dir)
        if not template_path.exists():
            logger.warning(f"Email template directory not found: {template_path}")
            template_path = DEFAULT_TEMPLATE_DIR
        self.template_env = Environment(
            loader=FileSystemLoader(str(template_path)),
            autoescape=select_autoescape(['html']),
        )

    def is_configured(self) -> bool:
        return self.provider_service is not None

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
        **kwargs,
    ) -> Dict[str, Any]:
        """
        Send an email via the configured provider.

        Keyword overrides: from_name, from_email, reply_to, message_stream, headers.

        Returns:
            Dict with 'success', 'provider', 'message_id', and 'error' keys
        """
        if not self.provider_service:
            return {
                'success': False,
                'provider': self.config.provider.value,
                'error': 'Email service not configured or initialization failed',
            }

        try:
            logger.info(f"Sending email to {to_email} via {self.config.provider.value}")
            result = await self.provider_service.send_email(
                to_email=to_email,
                subject=subject,
                html_content=html_content,
                text_content=text_content,
                **kwargs,
            )
            if result['success']:
                logger.info(f"Email sent successfully to {to_email} via {result['provider']}")
            else:
                logger.error(f"Email sending failed: {result['error']}")
            return result
        except Exception as e:
            error_msg = f"Email service error: {str(e)}"
            logger.error(error_msg, exc_info=True)
            return {'success': False, 'provider': self.config.provider.value, 'error': error_msg}

    def send_email_sync(self, to_email: str, subject: str, html_content: str, text_content: Optional[str] = None, **kwargs) -> Dict[str, Any]:
        """Blocking wrapper for callers running outside an event loop (routers, cron)."""
        return asyncio.run(self.send_email(to_email, subject, html_content, text_content, **kwargs))

    def has_template(self, template_name: str) -> bool:
        try:
            self.template_env.get_template(f"{template_name}.html")
            return True
        except TemplateNotFound:
            return False

    def render_template(self, template_name: str, context: Dict[str, Any]) -> tuple[str, str]:
        """
        Render email template with context.

        Returns:
            Tuple of (html_content, text_content)
        """
        try:
            html_template = self.template_env.get_template(f"{template_name}.html")
            html_content = html_template.render(**context)

            try:
                text_template = self.template_env.get_template(f"{template_name}.txt")
                text_content = text_template.render(**context)
            except TemplateNotFound:
                text_content = self._html_to_text(html_content)

            return html_content, text_content
        except Exception as e:
            raise TemplateRenderError(f"Template rendering failed for {template_name}: {str(e)}") from e

    def _html_to_text(self, html_content: str) -> str:
        """Convert HTML to basic text content."""
        text = re.sub(r'<(script|style)[^>]*>.*?</\1>', '', html_content, flags=re.S | re.I)
        text = re.sub(r'<br\s*/?>|</p>', '\n', text, flags=re.I)
        text = re.sub(r'<[^>]+>', '', text)
        text = text.replace('&amp;', '&').replace('&lt;', '<').replace('&gt;', '>')
        text = text.replace('&quot;', '"').replace('&#39;', "'")
        text = re.sub(r'[ \t]+', ' ', text)
        text = re.sub(r'\n\s*\n+', '\n\n', text).strip()
        return text

    async def test_connection(self) -> Dict[str, Any]:
        """Test email service configuration."""
        validation_errors = self.config.validate()
        if validation_errors:
            return {'success': False, 'error': f"Configuration errors: {', '.join(validation_errors)}"}
        if not self.provider_service:
            return {'success': False, 'error': 'Email provider service not initialized'}
        return {
            'success': True,
            'provider': self.config.provider.value,
            'message': f"Email service configured and ready ({self.config.provider.value})",
        }


_email_service = None
_marketing_email_service = None


def get_transactional_email_service() -> TransactionalEmailService:
    """Get singleton transactional email service instance."""
    global _email_service
    if _email_service is None:
        _email_service = TransactionalEmailService()
    return _email_service


def get_marketing_email_service() -> TransactionalEmailService:
    """Singleton bound to the Postmark broadcast stream."""
    global _marketing_email_service
    if _marketing_email_service is None:
        _marketing_email_service = TransactionalEmailService(TransactionalEmailConfig.marketing())
    return _marketing_email_service


def reset_email_services_for_tests() -> None:
    global _email_service, _marketing_email_service
    _email_service = None
    _marketing_email_service = None
