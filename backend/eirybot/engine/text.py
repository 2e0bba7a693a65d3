# /eirybot/engine/text.py

import re
from typing import Any, Dict, Mapping, Optional

from eirybot.models.template import TextOrLocalized

# Localization and {variable} interpolation shared by chat rendering and the
# handoff summary. The two call sites differ only in the fallback used for
# unknown or empty variables.

FALLBACK_LANGUAGE = "en"
PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")

CHAT_FALLBACK = ""
SUMMARY_FALLBACK = "N/A"


def get_localized_text(text: Optional[TextOrLocalized], language: str) -> str:
    """Returns the text for `language`, falling back to English, then to ''."""
    if not text:
        return ""
    if isinstance(text, str):
        return text
    return text.get(language) or text.get(FALLBACK_LANGUAGE) or ""


def build_context(variables: Optional[Mapping[str, Any]], lead: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Bot variables overlaid with captured lead values (lead wins)."""
    return {**(variables or {}), **(lead or {})}


def interpolate(template: str, context: Mapping[str, Any], fallback: str = CHAT_FALLBACK) -> str:
    """Replaces every {name} placeholder with its context value or `fallback`."""
    if not template:
        return ""

    def _replace(match: re.Match) -> str:
        value = context.get(match.group(1))
        if value is None or value == "":
            return fallback
        return str(value)

    return PLACEHOLDER_RE.sub(_replace, template)


def render_chat_text(text: Optional[TextOrLocalized], language: str, context: Mapping[str, Any]) -> str:
    return interpolate(get_localized_text(text, language), context, CHAT_FALLBACK)


def render_handoff_summary(template: Optional[TextOrLocalized], language: str, context: Mapping[str, Any]) -> str:
    return interpolate(get_localized_text(template, language), context, SUMMARY_FALLBACK)
