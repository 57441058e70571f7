from __future__ import annotations

EMOTION_TYPES: tuple[str, ...] = ("vibrance", "immersion", "clarity", "gravity", "serenity", "spectrum")

EMOTION_ALIASES: dict[str, str] = {
    "intense": "immersion",
    "alert": "immersion",
    "tension": "immersion",
    "analysis": "clarity",
    "calm": "serenity",
    "recovery": "serenity",
    "positive": "vibrance",
    "joy": "vibrance",
    "caution": "gravity",
    "risk": "gravity",
    "balanced": "spectrum",
    "neutral": "spectrum",
    "몰입": "immersion",
    "긴장": "immersion",
    "통찰": "clarity",
    "분석": "clarity",
    "회복": "serenity",
    "안정": "serenity",
    "설렘": "vibrance",
    "활력": "vibrance",
    "여운": "gravity",
    "성찰": "gravity",
    "균형": "spectrum",
    "중립": "spectrum",
}


def normalize_emotion(raw: object) -> str | None:
    text = str(raw or "").strip().lower()
    if not text:
        return None
    if text in EMOTION_TYPES:
        return text
    return EMOTION_ALIASES.get(text)
