from __future__ import annotations

import re
from urllib.parse import urlsplit, urlunsplit

from huebrief.drafting import ReferenceArticle

WORD_PATTERN = re.compile(r"\w+", flags=re.UNICODE)
SENTENCE_SPLIT_PATTERN = re.compile(r"(?<=[.!?。])\s+|\n+")
VERBATIM_SENTENCE_MIN_CHARS = 40
REFERENCE_BODY_EXCERPT_CHARS = 600


def normalize_url(url: str) -> str:
    candidate = url.strip()
    if not candidate:
        return ""
    parts = urlsplit(candidate)
    if not parts.scheme or not parts.netloc:
        return candidate.rstrip("/").lower()
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))


def citation_pool(
    reference: ReferenceArticle | None,
    allowed_urls: list[str],
    allowlist: list[str],
) -> set[str]:
    pool: set[str] = set()
    if reference is not None and reference.url.strip():
        pool.add(normalize_url(reference.url))
    for url in [*allowed_urls, *allowlist]:
        normalized = normalize_url(url)
        if normalized:
            pool.add(normalized)
    return pool


def normalize_text(text: str) -> str:
    return " ".join(WORD_PATTERN.findall(text.lower()))


def word_bigrams(text: str) -> set[str]:
    grams: set[str] = set()
    for word in WORD_PATTERN.findall(text.lower()):
        if len(word) == 1:
            grams.add(word)
            continue
        for index in range(len(word) - 1):
            grams.add(word[index : index + 2])
    return grams


def char_shingles(text: str, size: int = 3) -> set[str]:
    normalized = normalize_text(text)
    if len(normalized) < size:
        return {normalized} if normalized else set()
    return {normalized[index : index + size] for index in range(len(normalized) - size + 1)}


def jaccard(left: set[str], right: set[str]) -> float:
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


def reference_body_excerpt(reference: ReferenceArticle, limit: int = REFERENCE_BODY_EXCERPT_CHARS) -> str:
    body = " ".join(reference.content.split())
    if len(body) <= limit:
        return body
    return body[:limit].rsplit(" ", 1)[0]


def reference_text(reference: ReferenceArticle) -> str:
    """Reference text that grounding is scored against.

    The headline fields when present, else the body excerpt the draft prompt carries.
    """
    headline = " ".join(part for part in (reference.title, reference.summary) if part.strip())
    return headline or reference_body_excerpt(reference)


def grounding_overlap(generated_text: str, reference: ReferenceArticle) -> float | None:
    """Share of the reference's word bigrams that reappear in the generated text.

    Returns ``None`` when the reference carries no text to compare against.
    """
    reference_grams = word_bigrams(reference_text(reference))
    if not reference_grams:
        return None
    generated_grams = word_bigrams(generated_text)
    return round(len(reference_grams & generated_grams) / len(reference_grams), 4)


def title_copy_score(title: str, reference: ReferenceArticle) -> float:
    if not reference.title.strip():
        return 0.0
    if normalize_text(title) == normalize_text(reference.title):
        return 1.0
    return round(jaccard(char_shingles(title), char_shingles(reference.title)), 4)


def _reference_sentences(reference: ReferenceArticle) -> list[str]:
    body = "\n".join(part for part in (reference.summary, reference.content) if part.strip())
    sentences = []
    for sentence in SENTENCE_SPLIT_PATTERN.split(body):
        normalized = normalize_text(sentence)
        if len(normalized) >= VERBATIM_SENTENCE_MIN_CHARS:
            sentences.append(normalized)
    return sentences


def content_copy_score(content: str, reference: ReferenceArticle) -> float:
    """1.0 when a long reference sentence is reproduced verbatim, else trigram containment."""
    normalized_content = normalize_text(content)
    if not normalized_content:
        return 0.0
    for sentence in _reference_sentences(reference):
        if sentence in normalized_content:
            return 1.0

    body = " ".join(part for part in (reference.summary, reference.content) if part.strip())
    reference_grams = char_shingles(body)
    content_grams = char_shingles(content)
    if not reference_grams or not content_grams:
        return 0.0
    return round(len(content_grams & reference_grams) / len(content_grams), 4)
