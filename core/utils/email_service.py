from __future__ import annotations

import textwrap
from typing import Iterable, Optional

from django.conf import settings
from django.core.mail import EmailMessage

SUBJECT_PREFIX = '[Zaryah] '


def send_marketplace_email(
    subject: str,
    message: str,
    recipient_list: Iterable[str],
    reply_to: Optional[str] = None,
) -> int:
    """
    Send a plain-text marketplace email through Django's configured backend.

    - Subject gets the `[Zaryah]` prefix once
    - Body templates written as indented triple-quoted strings are dedented
    - Blank recipients are dropped; at least one must remain
    - Delivery failures raise (`fail_silently=False`)
    """
    if not subject or not isinstance(subject, str):
        raise ValueError("subject must be a non-empty string")

    if not isinstance(message, str):
        raise ValueError("message must be a string")

    recipients = [str(r).strip() for r in (recipient_list or []) if str(r).strip()]
    if not recipients:
        raise ValueError("recipient_list must contain at least one email address")

    if not subject.startswith(SUBJECT_PREFIX):
        subject = f'{SUBJECT_PREFIX}{subject}'

    email = EmailMessage(
        subject=subject,
        body=textwrap.dedent(message).strip() + '\n',
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=recipients,
        reply_to=[reply_to] if reply_to else None,
    )
    sent_count = email.send(fail_silently=False)

    if sent_count < 1:
        raise RuntimeError("Email was not sent (backend reported 0 messages).")

    return sent_count
