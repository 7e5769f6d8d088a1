"""
Email Service with SendGrid Integration
Handles waitlist and booking emails
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, Optional

from jinja2 import Template
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from fairway.config import settings

logger = logging.getLogger(__name__)

_LAYOUT = """
<!DOCTYPE html>
<html>
<head>
    <style>
        body { font-family: Arial, sans-serif; line-height: 1.6; }
        .container { max-width: 600px; margin: 0 auto; padding: 20px; }
        .header { background: #1f4d2b; color: white; padding: 20px; text-align: center; }
        .content { padding: 20px; background: #f4f4f4; color: #555555; }
        .button { display: inline-block; padding: 10px 20px; background: #1f4d2b; color: white; text-decoration: none; border-radius: 5px; }
        .footer { text-align: center; padding: 20px; color: #666; }
    </style>
</head>
<body>
    <div class="container">
        <div class="header"><h1>{{ heading }}</h1></div>
        <div class="content">%s</div>
        <div class="footer"><p>See you on the course.</p></div>
    </div>
</body>
</html>
"""


class EmailService:
    """Service for handling email operations"""

    def __init__(self, api_key: str = None, from_email: str = None):
        self.client = SendGridAPIClient(api_key if api_key is not None else settings.SENDGRID_API_KEY)
        self.from_email = from_email or settings.FROM_EMAIL
        self.templates = self._load_templates()

    def _load_templates(self) -> Dict[str, Template]:
        return {
            "waitlist_confirmation": Template(_LAYOUT % """
                <h2>Hi {{ first_name }},</h2>
                <p>You're #{{ position }} on the waitlist for <strong>{{ event_name }}</strong>.</p>
                <p>We'll email you if a spot opens up.</p>
            """),
            "waitlist_spot_available": Template(_LAYOUT % """
                <h2>Hi {{ first_name }},</h2>
                <p>A spot just opened up for <strong>{{ event_name }}</strong>.</p>
                <p>It's held for you until <strong>{{ expires_at }}</strong>. After that it goes to the next person on the list.</p>
                <center><a href="{{ claim_url }}" class="button">Claim Your Spot</a></center>
            """),
            "waitlist_spot_confirmed": Template(_LAYOUT % """
                <h2>Hi {{ first_name }},</h2>
                <p>A spot opened up for <strong>{{ event_name }}</strong> and we booked it for you
                using the card you saved.</p>
                <p>Your confirmation reference is {{ claim_ref }}.</p>
            """),
        }

    async def send_email(
        self,
        to_email: str,
        subject: str,
        template_name: str,
        context: Dict
    ) -> bool:
        """Send an email using SendGrid"""
        template = self.templates.get(template_name)
        if not template:
            logger.error(f"Template {template_name} not found")
            return False

        html_content = template.render(**context)
        message = Mail(
            from_email=self.from_email,
            to_emails=to_email,
            subject=subject,
            html_content=html_content
        )

        try:
            response = await asyncio.to_thread(self.client.send, message)
        except Exception as e:
            logger.error(f"Error sending email: {str(e)}")
            return False

        logger.info(f"Email sent to {to_email}: {response.status_code}")
        return response.status_code in [200, 201, 202]

    async def send_waitlist_confirmation(self, to_email: str, first_name: str, event_name: str, position: int) -> bool:
        return await self.send_email(
            to_email=to_email,
            subject=f"Waitlist Confirmed - {event_name}",
            template_name="waitlist_confirmation",
            context={
                "heading": "You're on the Waitlist",
                "first_name": first_name,
                "event_name": event_name,
                "position": position,
            }
        )

    async def send_spot_available(
        self,
        to_email: str,
        first_name: str,
        event_name: str,
        claim_ref: str,
        expires_at: Optional[datetime]
    ) -> bool:
        return await self.send_email(
            to_email=to_email,
            subject=f"A Spot Opened Up - {event_name}",
            template_name="waitlist_spot_available",
            context={
                "heading": "A Spot Just Opened Up!",
                "first_name": first_name,
                "event_name": event_name,
                "expires_at": expires_at.strftime("%B %d, %H:%M UTC") if expires_at else "soon",
                "claim_url": f"{settings.FRONTEND_URL}/waitlist/{claim_ref}/claim",
            }
        )

    async def send_spot_confirmed(self, to_email: str, first_name: str, event_name: str, claim_ref: str) -> bool:
        return await self.send_email(
            to_email=to_email,
            subject=f"You're In - {event_name}",
            template_name="waitlist_spot_confirmed",
            context={
                "heading": "You're In!",
                "first_name": first_name,
                "event_name": event_name,
                "claim_ref": claim_ref,
            }
        )
