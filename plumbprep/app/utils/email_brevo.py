import aiohttp
from typing import List, Optional
import os
import logging

logger = logging.getLogger(__name__)

PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "https://laplumbprep.com")


class BrevoEmailService:
    def __init__(self):
        self.api_key = os.getenv("BREVO_API_KEY")
        self.base_url = "https://api.brevo.com/v3"
        self.sender = {
            "name": "LA Plumb Prep",
            "email": os.getenv("EMAIL_SENDER", "noreply@laplumbprep.com")
        }

        if not self.api_key:
            logger.warning("BREVO_API_KEY not configured - email sending will fail")

    async def _send(self, to_email: str, to_name: str, subject: str, html_content: str, kind: str) -> bool:
        """Post one transactional email to Brevo. Never raises; returns delivery success."""
        try:
            if not self.api_key:
                logger.error("Cannot send email - BREVO_API_KEY not configured")
                return False

            url = f"{self.base_url}/smtp/email"

            headers = {
                "accept": "application/json",
                "content-type": "application/json",
                "api-key": self.api_key
            }

            data = {
                "sender": self.sender,
                "to": [{"email": to_email, "name": to_name}],
                "subject": subject,
                "htmlContent": html_content,
            }

            logger.info(f"Sending {kind} email to {to_email}")

            async with aiohttp.ClientSession() as session:
                async with session.post(url, json=data, headers=headers) as response:
                    response_text = await response.text()

                    if response.status == 201:
                        logger.info(f"{kind} email successfully sent to {to_email}")
                        return True
                    else:
                        logger.error(f"Failed to send {kind} email to {to_email}. Status: {response.status}, Response: {response_text}")
                        return False

        except Exception as e:
            logger.error(f"{kind} email error for {to_email}: {e}", exc_info=True)
            return False

    async def send_referral_invitation(
        self,
        to_email: str,
        referrer_name: str,
        referral_code: str,
        referral_link: str,
        to_name: Optional[str] = None,
    ) -> bool:
        """Send a referral invitation on behalf of an existing student

        Args:
            to_email: Invitee email address
            referrer_name: Name of the student sending the invite
            referral_code: Referrer's code, applied at registration
            referral_link: Registration link carrying the code
            to_name: Invitee name (optional)

        Returns:
            bool: True if email sent successfully, False otherwise
        """
        recipient_name = to_name or to_email.split('@')[0]

        html_content = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
            <h1 style="color: #1d4ed8;">{referrer_name} invited you to LA Plumb Prep</h1>
            <p style="font-size: 16px; line-height: 1.6;">Hi {recipient_name},</p>
            <p style="font-size: 16px; line-height: 1.6;">Get ready for your Louisiana plumbing license exam with courses, practice quizzes and an AI mentor.</p>
            <p style="text-align: center; margin: 30px 0;">
                <a href="{referral_link}" style="background: #1d4ed8; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; display: inline-block;">Join with code {referral_code}</a>
            </p>
        </div>
        """

        return await self._send(
            to_email,
            recipient_name,
            f"{referrer_name} invited you to LA Plumb Prep",
            html_content,
            "referral invitation",
        )

    async def send_bulk_enrollment_received(
        self,
        to_email: str,
        student_count: int,
        final_price: str,
        discount_percent: str,
    ) -> bool:
        """Confirm a bulk enrollment request to the employer contact"""
        html_content = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
            <h1 style="color: #1d4ed8;">We received your bulk enrollment request</h1>
            <p style="font-size: 16px; line-height: 1.6;">Students: <strong>{student_count}</strong></p>
            <p style="font-size: 16px; line-height: 1.6;">Volume discount: <strong>{discount_percent}%</strong></p>
            <p style="font-size: 16px; line-height: 1.6;">Quoted total: <strong>${final_price}</strong></p>
            <p style="font-size: 14px; color: #666; margin-top: 30px;">
                Our team reviews every request. Your students receive their invites as soon as it is approved.
            </p>
        </div>
        """

        return await self._send(
            to_email,
            to_email.split('@')[0],
            "Your LA Plumb Prep bulk enrollment request",
            html_content,
            "bulk enrollment confirmation",
        )

    async def send_enrollment_invite(self, to_email: str, first_name: str, course_ids: List[str]) -> bool:
        """Invite a student enrolled through an approved bulk request"""
        courses = ", ".join(course_id.replace("-", " ").title() for course_id in course_ids)

        html_content = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
            <h1 style="color: #1d4ed8;">Welcome, {first_name}!</h1>
            <p style="font-size: 16px; line-height: 1.6;">Your employer enrolled you in: <strong>{courses}</strong>.</p>
            <p style="text-align: center; margin: 30px 0;">
                <a href="{PUBLIC_BASE_URL}/register?email={to_email}" style="background: #1d4ed8; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; display: inline-block;">Activate your account</a>
            </p>
        </div>
        """

        return await self._send(
            to_email,
            first_name,
            "You're enrolled in LA Plumb Prep",
            html_content,
            "enrollment invite",
        )

# Create singleton instance
email_service = BrevoEmailService()
