"""
Best-effort email notice to a form's notification address.

A notification never decides the outcome of a submission: every failure,
including a timeout, is logged and reported as False.
"""
import asyncio
import html
import logging
from typing import Any, Callable, Dict, Optional, Set, Tuple

from models.base import FormModel
from utils.email import render_email, send_email_html

logger = logging.getLogger("backend.notifications")

MAX_PREVIEW_FIELDS = 25
MAX_VALUE_CHARS = 500

EmailSender = Callable[[str, str, str], None]


def build_submission_email(form_name: str, form_id: str, data: Dict[str, Any]) -> Tuple[str, str]:
    """Return (subject, html body) for a new-submission notice."""
    title = (form_name or "").strip() or form_id
    subject = f"New submission: {title}"

    rows = []
    for label, value in list(data.items())[:MAX_PREVIEW_FIELDS]:
        shown = str(value)
        if len(shown) > MAX_VALUE_CHARS:
            shown = shown[: MAX_VALUE_CHARS - 3] + "..."
        rows.append(
            "<tr>"
            f"<th valign=\"top\" style=\"text-align: left; padding: 6px 12px 6px 0; color: #374151;\">{html.escape(str(label))}</th>"
            f"<td style=\"padding: 6px 0; color: #111827; word-break: break-word;\">{html.escape(shown)}</td>"
            "</tr>"
        )
    if len(data) > MAX_PREVIEW_FIELDS:
        rows.append(f"<tr><td colspan=\"2\" style=\"color: #6b7280;\">and {len(data) - MAX_PREVIEW_FIELDS} more fields</td></tr>")
    content_html = "<table cellpadding=\"0\" cellspacing=\"0\" style=\"width: 100%;\">" + "".join(rows) + "</table>"

    body = render_email("base.html", {
        "subject": subject,
        "title": subject,
        "intro": f"You received a new submission for {title}.",
        "content_html": content_html,
        "preheader": f"New submission for {title}",
    })
    return subject, body


class NotificationDispatcher:
    """Sends submission notices either in the background or awaited with a timeout.

    mode="background": the request schedules a task and does not join it.
    mode="await": the request waits at most `timeout` seconds.
    """

    def __init__(self, sender: EmailSender = send_email_html, mode: str = "background", timeout: float = 8.0):
        self._sender = sender
        self.mode = mode
        self.timeout = timeout
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def deliver(self, to_email: str, form_id: str, form_name: str, data: Dict[str, Any]) -> bool:
        try:
            subject, body = build_submission_email(form_name, form_id, data)
            await asyncio.wait_for(asyncio.to_thread(self._sender, to_email, subject, body), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error("Notification timed out after %.1fs form_id=%s to=%s", self.timeout, form_id, to_email)
            return False
        except Exception as e:
            logger.exception("Notification failed form_id=%s to=%s error=%s", form_id, to_email, e)
            return False
        logger.info("Notification sent form_id=%s to=%s", form_id, to_email)
        return True

    async def notify(self, form: Optional[FormModel], data: Dict[str, Any]) -> None:
        if form is None or not form.notification_email:
            return
        if self.mode == "await":
            await self.deliver(form.notification_email, form.form_id, form.name, data)
            return
        task = asyncio.create_task(self.deliver(form.notification_email, form.form_id, form.name, data))
        # Keep a reference until done so the task is not garbage collected
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for background deliveries still in flight."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
