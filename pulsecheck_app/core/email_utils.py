"""Email utilities for verification links and response alerts.

Bodies are written in markdown (templates/emails/*.md), rendered to HTML
inside the base email layout and sent with a plain-text alternative.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string
from django.utils.html import strip_tags
import markdown

logger = logging.getLogger(__name__)


def get_branding(system_settings=None) -> Dict[str, Any]:
    """Brand values for the email layout, taken from the appearance settings when given."""
    branding = {
        "title": getattr(settings, "BRAND_TITLE", "PulseCheck"),
        "primary_color": "#6366F1",
        "footer_text": "",
    }
    if system_settings is not None:
        branding["primary_color"] = system_settings.appearance.primary_color
        branding["footer_text"] = system_settings.defaults.footer_text
    return branding


def markdown_to_html(markdown_text: str) -> str:
    return markdown.markdown(
        markdown_text,
        extensions=["extra", "nl2br", "sane_lists"],
    )


def send_branded_email(
    to_email: str,
    subject: str,
    markdown_content: str,
    branding: Optional[Dict[str, Any]] = None,
    from_email: Optional[str] = None,
) -> bool:
    """Send an email with a markdown body.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        markdown_content: Email body in markdown format
        branding: Values for the layout (defaults to platform branding)
        from_email: Sender email (defaults to DEFAULT_FROM_EMAIL)

    Returns:
        True if email sent successfully, False otherwise
    """
    branding = branding or get_branding()
    html_content = markdown_to_html(markdown_content)

    html_message = render_to_string(
        "emails/base_email.html",
        {
            "subject": subject,
            "content": html_content,
            "brand": branding,
            "site_url": settings.SITE_URL,
        },
    )
    plain_message = strip_tags(html_content)

    try:
        email = EmailMultiAlternatives(
            subject=subject,
            body=plain_message,
            from_email=from_email or settings.DEFAULT_FROM_EMAIL,
            to=[to_email],
        )
        email.attach_alternative(html_message, "text/html")
        email.send()
        logger.info(f"Email sent successfully to {to_email}: {subject}")
        return True
    except Exception as e:
        logger.error(
            f"Failed to send email to {to_email}: {subject}",
            exc_info=True,
            extra={
                "recipient": to_email,
                "subject": subject,
                "error_type": type(e).__name__,
                "email_backend": settings.EMAIL_BACKEND,
            },
        )
        return False


def send_verification_email(email: str, verify_url: str) -> bool:
    branding = get_branding()
    markdown_content = render_to_string(
        "emails/verify_email.md",
        {
            "email": email,
            "verify_url": verify_url,
            "max_age_hours": settings.PULSECHECK_VERIFICATION_MAX_AGE // 3600,
        },
    )
    return send_branded_email(
        to_email=email,
        subject=f"Verify your email for {branding['title']}",
        markdown_content=markdown_content,
        branding=branding,
    )


def send_response_alert_email(
    to_email: str,
    kind_label: str,
    title: str,
    location: str,
    count: int,
    results_url: str,
    system_settings=None,
) -> bool:
    """Tell an administrator that a form or poll reached another alert threshold."""
    markdown_content = render_to_string(
        "emails/response_alert.md",
        {
            "kind_label": kind_label,
            "title": title,
            "location": location,
            "count": count,
            "results_url": results_url,
        },
    )
    return send_branded_email(
        to_email=to_email,
        subject=f"{title}: {count} responses received",
        markdown_content=markdown_content,
        branding=get_branding(system_settings),
    )
