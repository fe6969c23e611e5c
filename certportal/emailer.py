import json
import logging
import os
import re
import smtplib
import sys
from email.message import EmailMessage
from typing import Iterable, Sequence

logger = logging.getLogger("certportal.mailer")
if not logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    logger.addHandler(handler)
logger.setLevel(logging.INFO)

_SPLIT_RE = re.compile(r"[;,]")


def normalize_recipients(recipients: Sequence[str] | str | None) -> tuple[list[str], str]:
    """Split, validate and de-duplicate recipients; returns ``(envelope, header)``."""
    if recipients is None:
        tokens: Iterable[str] = []
    elif isinstance(recipients, str):
        tokens = _SPLIT_RE.split(recipients)
    else:
        tokens = (str(value) for value in recipients)

    seen: set[str] = set()
    kept: list[str] = []
    for raw in tokens:
        candidate = (raw or "").strip()
        if not candidate:
            continue
        lowered = candidate.lower()
        if "@" not in lowered or "." not in lowered.split("@")[-1]:
            logger.warning("[MAIL-INVALID-RECIPIENT] token=%s", candidate)
            continue
        if lowered in seen:
            continue
        seen.add(lowered)
        kept.append(candidate)
    return kept, ", ".join(kept)


def send(
    recipients: Sequence[str] | str | None,
    subject: str,
    body: str,
    html: str | None = None,
    attachments: Sequence[tuple[str, bytes, str]] = (),
):
    """Send a message over SMTP configured from the environment.

    ``attachments`` holds ``(filename, data, mime_type)`` tuples. Without a
    host, port and sender address the call is logged and skipped.
    """
    host = os.getenv("SMTP_HOST")
    port = os.getenv("SMTP_PORT")
    user = os.getenv("SMTP_USER")
    password = os.getenv("SMTP_PASS")
    from_addr = os.getenv("SMTP_FROM_DEFAULT")
    from_name = os.getenv("SMTP_FROM_NAME", "")

    envelope, header = normalize_recipients(recipients)
    mode = "real"
    if not host or not port or not from_addr:
        mode = "stub"
        logger.info(
            "[MAIL-OUT] mode=%s to_header=%s envelope=%s subject=\"%s\" host=%s result=stub",
            mode,
            header,
            json.dumps(envelope),
            subject,
            host,
        )
        return {"ok": False, "detail": "stub: missing config"}

    if not envelope:
        logger.warning("[MAIL-NO-RECIPIENTS] subject=\"%s\" host=%s", subject, host)
        return {"ok": False, "detail": "no valid recipients"}

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["To"] = header
    msg["From"] = f"{from_name} <{from_addr}>" if from_name else from_addr
    msg.set_content(body)
    if html:
        msg.add_alternative(html, subtype="html")
    for filename, data, mime_type in attachments:
        maintype, _, subtype = (mime_type or "application/octet-stream").partition("/")
        msg.add_attachment(data, maintype=maintype, subtype=subtype, filename=filename)

    try:
        port_int = int(port)
        if port_int == 465:
            server = smtplib.SMTP_SSL(host, port_int)
        else:
            server = smtplib.SMTP(host, port_int)
            if port_int == 587:
                server.starttls()
        if user and password:
            server.login(user, password)
        server.send_message(msg, from_addr=from_addr, to_addrs=envelope)
        server.quit()
    except Exception as e:
        logger.info(
            "[MAIL-OUT] mode=%s to_header=%s subject=\"%s\" host=%s result=%s",
            mode,
            header,
            subject,
            host,
            e,
        )
        return {"ok": False, "detail": str(e)}
    logger.info(
        "[MAIL-OUT] mode=%s to_header=%s envelope=%s subject=\"%s\" host=%s result=sent",
        mode,
        header,
        json.dumps(envelope),
        subject,
        host,
    )
    return {"ok": True, "detail": "sent"}
