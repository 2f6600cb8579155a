"""Plain-text and markdown exports of a saved meeting, plus share-or-copy."""

from __future__ import annotations

import logging
import re
from typing import Callable, Optional

import pyperclip

from mindscribe.models import Meeting

logger = logging.getLogger("mindscribe.export")

ShareHook = Callable[[str, str], None]


def _slug(title: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    return slug or "meeting"


def transcript_filename(meeting: Meeting) -> str:
    return f"{_slug(meeting.title)}-transcript.txt"


def notes_filename(meeting: Meeting) -> str:
    return f"{_slug(meeting.title)}-notes.md"


def format_transcript(meeting: Meeting) -> str:
    lines = [meeting.title, meeting.date]
    if meeting.duration:
        lines.append(f"Duration: {meeting.duration}")
    lines.append("")
    lines.extend(entry.display_line() for entry in meeting.transcript)
    return "\n".join(lines) + "\n"


def format_notes(meeting: Meeting) -> str:
    lines = [f"# {meeting.title}", "", f"Date: {meeting.date}"]
    if meeting.duration:
        lines.append(f"Duration: {meeting.duration}")
    lines += ["", "## Key Points", ""]
    lines.extend(f"- {point}" for point in meeting.key_points)
    if not meeting.key_points:
        lines.append("_No key points recorded._")
    lines += ["", "## Action Items", ""]
    lines.extend(f"- [ ] {item}" for item in meeting.action_items)
    if not meeting.action_items:
        lines.append("_No action items recorded._")
    return "\n".join(lines) + "\n"


def share_content(title: str, text: str, share_hook: Optional[ShareHook] = None) -> str:
    """Share through the OS hook when there is one, otherwise copy to the clipboard.

    Returns "shared", "copied" or "failed".
    """
    if share_hook is not None:
        try:
            share_hook(title, text)
            logger.info("Shared content: title=%s", title)
            return "shared"
        except Exception as exc:
            logger.warning("Share hook failed, falling back to clipboard: %s", exc)
    try:
        pyperclip.copy(text)
    except pyperclip.PyperclipException as exc:
        logger.warning("Clipboard copy failed: %s", exc)
        return "failed"
    logger.info("Copied content to clipboard: title=%s chars=%d", title, len(text))
    return "copied"
