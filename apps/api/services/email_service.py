"""
Email Service

Transactional emails for account and subscription events.
Uses SMTP; templates are localized (ja/en) with {placeholder} substitution.
"""

import re
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from html import escape
from typing import Dict, Optional
from core.config import settings
import logging

logger = logging.getLogger(__name__)

AUTH = "auth"
SUBSCRIPTION = "subscription"

EMAIL_CATEGORIES = {
    "welcome": AUTH,
    "welcome_back": AUTH,
    "goodbye": AUTH,
    "upgrade": SUBSCRIPTION,
    "downgrade": SUBSCRIPTION,
    "downgrade_scheduled": SUBSCRIPTION,
}

DEFAULT_PLACEHOLDERS = {
    "ja": {"first_name": "ユーザー", "plan_name": "Standard", "current_plan_name": "Standard", "change_date": ""},
    "en": {"first_name": "there", "plan_name": "Standard", "current_plan_name": "Standard", "change_date": ""},
}

# subject, heading, then body paragraphs.
EMAIL_TEMPLATES: Dict[str, Dict[str, Dict]] = {
    "ja": {
        "welcome": {
            "subject": "Shoninへようこそ！",
            "heading": "{first_name}さん、Shoninへようこそ",
            "body": [
                "Shoninは、あなたの孤独な努力を静かに見守るアプリです。",
                "今日の一歩を記録するところから始めましょう。",
            ],
        },
        "welcome_back": {
            "subject": "おかえりなさい！",
            "heading": "{first_name}さん、おかえりなさい",
            "body": [
                "また会えて嬉しいです。",
                "これまでの記録はそのまま残っています。続きから始めましょう。",
            ],
        },
        "goodbye": {
            "subject": "ご利用ありがとうございました",
            "heading": "{first_name}さん、ご利用ありがとうございました",
            "body": [
                "アカウントの削除が完了しました。",
                "あなたの努力がこれからも実を結ぶことを願っています。",
            ],
        },
        "upgrade": {
            "subject": "{plan_name}プランへようこそ！",
            "heading": "{first_name}さん、{plan_name}プランへようこそ",
            "body": [
                "{plan_name}プランへのアップグレードが完了しました。",
                "世界中の同志と共に孤独な努力を続けましょう。",
                "引き続き、{first_name}さんの努力を見守っています。",
            ],
        },
        "downgrade": {
            "subject": "{plan_name}プランに変更されました",
            "heading": "{first_name}さん、{plan_name}プランに変更されました",
            "body": [
                "プランを{plan_name}プランに変更いたしました。",
                "どうしても一人に耐えられなくなったら、いつでも戻ってきてくださいね。",
            ],
        },
        "downgrade_scheduled": {
            "subject": "プラン変更のお知らせ",
            "heading": "{first_name}さん、プラン変更のお知らせです",
            "body": [
                "サブスクリプションのキャンセルを承りました。",
                "{change_date}に{plan_name}プランに変更されます。",
                "それまでは引き続き、現在の{current_plan_name}プランの全機能をご利用いただけます。",
            ],
        },
    },
    "en": {
        "welcome": {
            "subject": "Welcome to Shonin!",
            "heading": "Welcome to Shonin, {first_name}",
            "body": [
                "Shonin quietly keeps watch over the effort you put in on your own.",
                "Start by logging today's first step.",
            ],
        },
        "welcome_back": {
            "subject": "Welcome back!",
            "heading": "Welcome back, {first_name}",
            "body": [
                "It's good to see you again.",
                "Your records are right where you left them. Pick up where you stopped.",
            ],
        },
        "goodbye": {
            "subject": "Thank you for using Shonin",
            "heading": "Thank you, {first_name}",
            "body": [
                "Your account has been deleted.",
                "We hope your effort keeps bearing fruit.",
            ],
        },
        "upgrade": {
            "subject": "Welcome to the {plan_name} plan!",
            "heading": "{first_name}, welcome to the {plan_name} plan",
            "body": [
                "Your upgrade to the {plan_name} plan is complete.",
                "Keep going, alongside everyone else doing the quiet work.",
                "We'll keep watching over your effort.",
            ],
        },
        "downgrade": {
            "subject": "Your plan changed to {plan_name}",
            "heading": "{first_name}, your plan is now {plan_name}",
            "body": [
                "Your plan has been changed to {plan_name}.",
                "Whenever you need us again, you're always welcome back.",
            ],
        },
        "downgrade_scheduled": {
            "subject": "Upcoming plan change",
            "heading": "{first_name}, your plan will change soon",
            "body": [
                "We received your cancellation.",
                "Your plan will change to {plan_name} on {change_date}.",
                "Until then you keep every feature of your current {current_plan_name} plan.",
            ],
        },
    },
}

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def category_for(email_type: str) -> str:
    try:
        return EMAIL_CATEGORIES[email_type]
    except KeyError:
        raise ValueError(f"Unknown email type: {email_type}")


def fill(template: str, replacements: Dict[str, str]) -> str:
    """Replace {key} placeholders; unknown keys are left as-is."""
    return _PLACEHOLDER.sub(lambda m: str(replacements.get(m.group(1), m.group(0))), template)


def render_email(email_type: str, language: Optional[str], data: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Build subject, HTML and plain-text bodies for one email."""
    category_for(email_type)
    lang = "en" if language == "en" else "ja"
    template = EMAIL_TEMPLATES[lang][email_type]

    replacements = dict(DEFAULT_PLACEHOLDERS[lang])
    replacements.update({k: v for k, v in (data or {}).items() if v})

    subject = fill(template["subject"], replacements)
    heading = fill(template["heading"], replacements)
    paragraphs = [fill(p, replacements) for p in template["body"]]

    html_parts = [f"<h1>{escape(heading)}</h1>"]
    html_parts.extend(f"<p>{escape(p)}</p>" for p in paragraphs)
    html_parts.append("<p>Shonin</p>")

    return {
        "subject": subject,
        "html": "\n".join(html_parts),
        "text": "\n\n".join([heading] + paragraphs + ["Shonin"]),
    }


class EmailService:
    """Service for sending emails"""

    def __init__(self):
        self.smtp_server = settings.SMTP_SERVER
        self.smtp_port = settings.SMTP_PORT
        self.smtp_username = settings.SMTP_USERNAME
        self.smtp_password = settings.SMTP_PASSWORD
        self.from_email = settings.FROM_EMAIL
        self.from_name = settings.FROM_NAME
        self.enabled = settings.EMAIL_ENABLED

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """
        Send an email.

        Returns True if sent successfully, False otherwise.
        """
        if not to_email:
            logger.error("Email address is required")
            return False

        if not self.enabled:
            logger.info(f"Email disabled, would send to {to_email}: {subject}")
            return False

        try:
            msg = MIMEMultipart('alternative')
            msg['Subject'] = subject
            msg['From'] = f"{self.from_name} <{self.from_email}>"
            msg['To'] = to_email

            if text_content:
                msg.attach(MIMEText(text_content, 'plain', 'utf-8'))
            msg.attach(MIMEText(html_content, 'html', 'utf-8'))

            if self.smtp_username and self.smtp_password:
                server = smtplib.SMTP(self.smtp_server, self.smtp_port)
                server.starttls()
                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)
                server.quit()
            else:
                # Local development - just log
                logger.info(f"Would send email to {to_email}: {subject}")
                logger.debug(f"Content: {html_content[:200]}...")

            return True

        except Exception as e:
            logger.error(f"Error sending email to {to_email}: {str(e)}")
            return False

    def send_templated(
        self,
        to_email: str,
        email_type: str,
        language: Optional[str] = "ja",
        data: Optional[Dict[str, str]] = None,
    ) -> bool:
        rendered = render_email(email_type, language, data)
        logger.info(f"Sending {category_for(email_type)}/{email_type} email")
        return self.send_email(to_email, rendered["subject"], rendered["html"], rendered["text"])


# Singleton instance
email_service = EmailService()
