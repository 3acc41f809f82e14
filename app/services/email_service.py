"""
Email delivery for daily plans, interview unlocks and progress milestones.

Sends through SMTP with an HTML body and a plain-text alternative. Delivery is
best effort: every send returns True/False and never raises.
"""
import html
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional, List, Dict, Any

from sqlalchemy.orm import Session

from app.core.config import (
    SMTP_HOST,
    SMTP_PORT,
    SMTP_USER,
    SMTP_PASS,
    SMTP_USE_SSL,
    EMAIL_FROM_NAME,
    FRONTEND_URL,
    PROVIDER_TIMEOUT_SECONDS,
)
from app.db.models.notification import Notification

logger = logging.getLogger(__name__)


def record_notification(
    db: Session,
    user_id: int,
    type: str,
    message: str,
    sent: bool,
    dispatch_key: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> Notification:
    """Add a Notification row to the session. The caller commits."""
    notification = Notification(
        user_id=user_id,
        type=type,
        message=message,
        sent=sent,
        dispatch_key=dispatch_key,
        payload=payload,
    )
    db.add(notification)
    return notification


def _progress_bar(progress: float) -> str:
    width = min(100, max(0, progress))
    color = "#28a745" if progress >= 80 else "#ffc107" if progress >= 50 else "#007bff"
    return (
        '<div style="background:#e9ecef;height:20px;border-radius:10px;overflow:hidden;">'
        f'<div style="background:{color};height:100%;width:{width:g}%;"></div></div>'
    )


def motivational_message(progress: float) -> str:
    if progress >= 100:
        return "You've completed your entire learning journey! Time to apply your new skills in the real world."
    if progress >= 90:
        return "You're almost at the finish line! Just a few more tasks to complete your learning journey."
    if progress >= 75:
        return "You're in the final stretch! Your dedication is paying off."
    if progress >= 50:
        return "You're making excellent progress! You've completed more than half of your learning plan."
    if progress >= 25:
        return "Great start! You're building momentum. Consistency is key to success."
    return "Every journey begins with a single step. You're on the right track!"


def _wrap_html(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{html.escape(title)}</title></head>"
        '<body style="font-family:Arial,sans-serif;line-height:1.6;color:#333;max-width:600px;margin:0 auto;padding:20px;">'
        f"{body}"
        '<p style="margin-top:30px;color:#999;font-size:14px;text-align:center;">'
        f'Sent by {html.escape(EMAIL_FROM_NAME)} | <a href="{FRONTEND_URL}">Visit the platform</a></p>'
        "</body></html>"
    )


def render_daily_plan(user_name: str, role: str, day_index: int, day: Dict[str, Any]) -> Dict[str, str]:
    """Subject, text and HTML for one plan day. `day` is a PlanDay dict."""
    tasks = day.get("tasks") or []
    total_minutes = sum(task.get("duration_mins") or 0 for task in tasks)
    focus = day.get("focus") or "Learning tasks"
    subject = f"Your Daily Learning Plan - Day {day_index + 1}"

    text_lines = [
        f"Hi {user_name},",
        "",
        f"Day {day_index + 1} of your {role} plan: {focus}",
        f"Estimated time: {total_minutes} minutes",
        "",
    ]
    items = []
    for number, task in enumerate(tasks, start=1):
        text_lines.append(f"{number}. {task.get('title')} ({task.get('duration_mins')} min)")
        if task.get("description"):
            text_lines.append(f"   {task['description']}")
        for link in task.get("resource_links") or []:
            text_lines.append(f"   - {link}")
        links = "".join(
            f'<li><a href="{html.escape(link)}">{html.escape(link)}</a></li>'
            for link in task.get("resource_links") or []
        )
        items.append(
            f"<li><strong>{html.escape(str(task.get('title')))}</strong> "
            f"({task.get('duration_mins')} min)"
            f"<br>{html.escape(task.get('description') or '')}"
            f"{'<ul>' + links + '</ul>' if links else ''}</li>"
        )
    text_lines += ["", f"Open your planner: {FRONTEND_URL}/planner"]

    body = (
        f"<h1>Day {day_index + 1}: {html.escape(focus)}</h1>"
        f"<p>Hi {html.escape(user_name)}, here is today's plan for becoming a {html.escape(role)}.</p>"
        f"<p><strong>Estimated time:</strong> {total_minutes} minutes</p>"
        f"<ol>{''.join(items)}</ol>"
        f'<p><a href="{FRONTEND_URL}/planner">Open your planner</a></p>'
    )
    return {"subject": subject, "text": "\n".join(text_lines), "html": _wrap_html(subject, body)}


class EmailService:
    """SMTP sender. Unconfigured SMTP turns every send into a logged no-op returning False."""

    def __init__(
        self,
        host: str = SMTP_HOST,
        port: int = SMTP_PORT,
        username: str = SMTP_USER,
        password: str = SMTP_PASS,
        use_ssl: bool = SMTP_USE_SSL,
        from_name: str = EMAIL_FROM_NAME,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_ssl = use_ssl or port == 465
        self.from_name = from_name
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.username and self.password)

    def send(
        self,
        to_email: str,
        subject: str,
        text_body: str,
        html_body: Optional[str] = None,
        attachments: Optional[List[Dict[str, Any]]] = None,
    ) -> bool:
        """
        Send one message.

        Args:
            attachments: dicts with filename, content (bytes), maintype, subtype

        Returns:
            True if the SMTP server accepted the message
        """
        if not self.is_configured:
            logger.warning(f"SMTP not configured, email not sent: subject={subject!r}")
            return False

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.username}>"
        msg["To"] = to_email
        msg.set_content(text_body)
        if html_body:
            msg.add_alternative(html_body, subtype="html")
        for attachment in attachments or []:
            msg.add_attachment(
                attachment["content"],
                maintype=attachment.get("maintype", "application"),
                subtype=attachment.get("subtype", "pdf"),
                filename=attachment["filename"],
            )

        try:
            if self.use_ssl:
                with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout) as server:
                    server.login(self.username, self.password)
                    server.send_message(msg)
            else:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                    server.starttls()
                    server.login(self.username, self.password)
                    server.send_message(msg)
        except smtplib.SMTPAuthenticationError:
            logger.error(f"SMTP authentication failed: host={self.host}")
            return False
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP send failed: host={self.host}, subject={subject!r}, error={type(e).__name__}: {e}")
            return False

        logger.info(f"Email sent: subject={subject!r}")
        return True

    def send_daily_plan_email(
        self,
        user,
        planner,
        day_index: int,
        day: Dict[str, Any],
        pdf_bytes: Optional[bytes] = None,
    ) -> bool:
        content = render_daily_plan(user.display_name, planner.role, day_index, day)
        attachments = None
        if pdf_bytes:
            attachments = [{
                "filename": f"daily-plan-day-{day_index + 1}.pdf",
                "content": pdf_bytes,
                "maintype": "application",
                "subtype": "pdf",
            }]
        return self.send(user.email, content["subject"], content["text"], content["html"], attachments)

    def send_interview_unlock_email(self, user, planner, interview, progress: float) -> bool:
        when = interview.scheduled_at.strftime("%A, %B %d, %Y at %H:%M UTC")
        subject = "Congratulations! You've Unlocked Mock Interview"
        text = (
            f"Hi {user.display_name},\n\n"
            f"You've completed {progress:g}% of your learning journey and unlocked the mock interview.\n"
            f"Role: {planner.role}\nScheduled: {when}\n\n"
            f"View interview details: {FRONTEND_URL}/interview"
        )
        body = (
            "<h1>Mock Interview Unlocked!</h1>"
            f"<p>You've completed {progress:g}% of your learning journey.</p>"
            f"{_progress_bar(progress)}"
            f"<p><strong>Role:</strong> {html.escape(planner.role)}<br><strong>Scheduled:</strong> {when}</p>"
            "<ul><li>AI-powered voice interview with realistic questions</li>"
            "<li>Role-specific technical and behavioral questions</li>"
            "<li>Detailed performance report with improvement suggestions</li></ul>"
            f'<p><a href="{FRONTEND_URL}/interview">View interview details</a></p>'
        )
        return self.send(user.email, subject, text, _wrap_html(subject, body))

    def send_milestone_email(self, user, planner, milestone) -> bool:
        subject = f"{milestone.milestone} - {milestone.progress}% Complete!"
        text = (
            f"Hi {user.display_name},\n\n{milestone.message}\n\n"
            f"{motivational_message(milestone.progress)}\n\n"
            f"Continue learning: {FRONTEND_URL}/dashboard"
        )
        unlock = (
            "<p><strong>Interview unlocked!</strong> Mock interviews are now available from your dashboard.</p>"
            if milestone.unlocks_interview else ""
        )
        body = (
            f"<h1>{html.escape(milestone.milestone)}!</h1>"
            f"<p>{html.escape(milestone.message)}</p>"
            f"{_progress_bar(milestone.progress)}"
            f"{unlock}"
            f"<p>{motivational_message(milestone.progress)}</p>"
            f'<p><a href="{FRONTEND_URL}/dashboard">Continue learning</a></p>'
        )
        return self.send(user.email, subject, text, _wrap_html(subject, body))


_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """Process-wide EmailService built from config."""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service


