"""
SMS helpers: Georgian phone normalization, segment counting and templates.

Normalized numbers are ``995XXXXXXXXX`` (12 digits, no plus sign).
"""
from __future__ import annotations

import math
import re
from typing import Any, Dict, List, Optional, Tuple

GSM7_SINGLE = 160
GSM7_MULTI = 153
UNICODE_SINGLE = 70
UNICODE_MULTI = 67

# Non-ASCII characters of the GSM 03.38 default alphabet
_GSM7_EXTRA = set("@£$¥èéùìòÇØøÅåΔ_ΦΓΛΩΠΨΣΘΞÆæßÉ¤¡ÄÖÑÜ§¿äöñüà")

_VARIABLE = re.compile(r"\{\{(\w+)\}\}")


def normalize_phone_number(phone: Optional[str]) -> Optional[str]:
    if not phone:
        return None
    cleaned = re.sub(r"[^\d+]", "", phone)
    if cleaned.startswith("+"):
        cleaned = cleaned[1:]
    if cleaned.startswith("995") and len(cleaned) == 12:
        return cleaned
    if cleaned.startswith("5") and len(cleaned) == 9:
        return f"995{cleaned}"
    if cleaned.startswith("0") and len(cleaned) == 10:
        return f"995{cleaned[1:]}"
    return None


def is_valid_georgian_phone(phone: Optional[str]) -> bool:
    normalized = normalize_phone_number(phone)
    return bool(normalized) and normalized[3] == "5"


def format_phone_for_display(phone: Optional[str]) -> str:
    """``995551234567`` -> ``+995 551 234 567``; unparseable input is returned as is."""
    normalized = normalize_phone_number(phone)
    if not normalized:
        return phone or ""
    return f"+{normalized[:3]} {normalized[3:6]} {normalized[6:9]} {normalized[9:]}"


def is_gsm7(text: str) -> bool:
    return all(ord(ch) < 128 or ch in _GSM7_EXTRA for ch in text)


def calculate_sms_segments(text: str) -> Dict[str, Any]:
    if is_gsm7(text):
        encoding, single, multi = "gsm7", GSM7_SINGLE, GSM7_MULTI
    else:
        encoding, single, multi = "unicode", UNICODE_SINGLE, UNICODE_MULTI
    segments = 1 if len(text) <= single else math.ceil(len(text) / multi)
    return {"segments": segments, "encoding": encoding}


def sms_character_info(text: str) -> Dict[str, Any]:
    info = calculate_sms_segments(text)
    unicode = info["encoding"] == "unicode"
    single = UNICODE_SINGLE if unicode else GSM7_SINGLE
    multi = UNICODE_MULTI if unicode else GSM7_MULTI
    if info["segments"] == 1:
        remaining = single - len(text)
    else:
        remaining = multi - (len(text) - (info["segments"] - 1) * multi)
    return {
        "char_count": len(text),
        "segments": info["segments"],
        "encoding": info["encoding"],
        "max_chars_per_segment": single,
        "remaining_in_current_segment": remaining,
    }


def render_sms_template(template: str, variables: Dict[str, Any]) -> str:
    """Replace ``{{name}}``; missing or None values render as empty strings."""
    def _sub(match):
        value = variables.get(match.group(1))
        return "" if value is None else str(value)

    return _VARIABLE.sub(_sub, template or "")


def extract_template_variables(template: str) -> List[str]:
    seen: List[str] = []
    for name in _VARIABLE.findall(template or ""):
        if name not in seen:
            seen.append(name)
    return seen


def truncate_for_sms(text: str, max_segments: int = 3) -> Tuple[str, bool]:
    """Return ``(text, truncated)``; truncated text ends with ``...``."""
    multi = GSM7_MULTI if is_gsm7(text) else UNICODE_MULTI
    max_chars = max_segments * multi
    if len(text) <= max_chars:
        return text, False
    return text[:max_chars - 3] + "...", True
