"""Turning free-form model output into key points and action items."""

from __future__ import annotations

import json
import logging
import random
import re
from typing import Any, Optional, Sequence

from mindscribe.models import ACTION, POINT, Insights, TranscriptEntry

logger = logging.getLogger("mindscribe.key_points")

APOLOGY = "Sorry, the meeting notes could not be generated from the model response. Please try again."

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_BULLET = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.*\S)\s*$")
_FENCE = re.compile(r"^```[a-zA-Z]*\s*$")


def _strip_fences(text: str) -> str:
    lines = [line for line in text.strip().splitlines() if not _FENCE.match(line.strip())]
    return "\n".join(lines).strip()


def _item_text(item: Any) -> tuple[Optional[str], Optional[str]]:
    if isinstance(item, str):
        return item.strip() or None, None
    if isinstance(item, dict):
        text = str(item.get("text") or item.get("description") or "").strip()
        return text or None, item.get("type")
    return None, None


def _from_object(data: Any) -> Optional[Insights]:
    if not isinstance(data, dict):
        return None
    raw_points = data.get("keyPoints", data.get("key_points"))
    raw_actions = data.get("actionItems", data.get("action_items"))
    if not isinstance(raw_points, list) and not isinstance(raw_actions, list):
        return None
    points: list[str] = []
    actions: list[str] = []
    for default_type, raw in ((POINT, raw_points), (ACTION, raw_actions)):
        for item in raw if isinstance(raw, list) else []:
            text, item_type = _item_text(item)
            if not text:
                continue
            if (item_type or default_type) == ACTION:
                actions.append(text)
            else:
                points.append(text)
    return Insights(key_points=points, action_items=actions, source="llm")


def _from_bullets(text: str) -> Optional[Insights]:
    points: list[str] = []
    actions: list[str] = []
    section: Optional[str] = None
    for line in text.splitlines():
        lowered = line.lower()
        match = _BULLET.match(line)
        if not match:
            if "key point" in lowered or "insight" in lowered:
                section = POINT
            elif "action item" in lowered or "next step" in lowered:
                section = ACTION
            continue
        if section == POINT:
            points.append(match.group(1))
        elif section == ACTION:
            actions.append(match.group(1))
    if not points and not actions:
        return None
    return Insights(key_points=points, action_items=actions, source="llm")


def parse_insights(response: str) -> Insights:
    """Best-effort extraction, never raises.

    Tries, in order: the whole response as JSON, the outermost ``{...}``
    substring, bulleted lines under "key points" / "action items" headings.
    When all of those fail the result carries an apology as its error.
    """
    text = _strip_fences(response or "")
    try:
        insights = _from_object(json.loads(text))
        if insights is not None:
            return insights
    except json.JSONDecodeError:
        pass

    match = _JSON_OBJECT.search(text)
    if match:
        try:
            insights = _from_object(json.loads(match.group(0)))
            if insights is not None:
                logger.debug("Recovered insights from embedded JSON object")
                return insights
        except json.JSONDecodeError:
            logger.debug("Embedded JSON object did not parse")

    insights = _from_bullets(text)
    if insights is not None:
        logger.info("Recovered insights from bullet lists: points=%d actions=%d",
                    len(insights.key_points), len(insights.action_items))
        return insights

    logger.warning("Unparseable model response: %s", text[:300])
    return Insights(source="fallback", error=APOLOGY, error_kind="analysis")


KEY_POINT_TEMPLATES = (
    "Team needs to focus on improving user experience",
    "Project timeline needs to be adjusted for Q3 delivery",
    "Client feedback indicates need for simplification of interface",
    "Current progress is ahead of schedule on backend components",
    "Market analysis shows increased demand for this feature",
)

ACTION_ITEM_TEMPLATES = (
    "Schedule follow-up meeting to discuss timeline changes",
    "Assign resources to improve onboarding process",
    "Create prototype for new feature by next week",
    "Review analytics data and prepare report",
    "Contact client to get clarification on requirements",
)


class MockInsightsGenerator:
    """Templated insights for when no model can be reached."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def generate(self, entries: Sequence[TranscriptEntry]) -> Insights:
        points: list[str] = []
        actions: list[str] = []
        if len(entries) > 2:
            points.append(f"Key insight: {self._rng.choice(KEY_POINT_TEMPLATES)}")
        if len(entries) > 5:
            actions.append(f"Action item: {self._rng.choice(ACTION_ITEM_TEMPLATES)}")
        return Insights(key_points=points, action_items=actions, source="mock")
