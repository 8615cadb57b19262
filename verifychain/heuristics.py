# verifychain/heuristics.py
"""
Deterministic keyword scorer used whenever the oracle cannot give a verdict.

Both entry points are pure: the same input always yields the same result.
Keywords count by presence (case-insensitive substring), not frequency.

The two paths score differently. Plain text starts from a fresh 50 and
moves by 10/15 per keyword with min/max caps of 85/15.
Structured records add category, source and date signals, move by 8/12 and
clamp to [15, 95].
"""
import logging
from typing import Dict, FrozenSet, Iterable

from .schema import InputKind, Method, NewsRecord, Verdict, VerificationResult

log = logging.getLogger(__name__)

PLAIN_POSITIVE = frozenset("""
elecciones presidente gobierno ministerio congreso ley decreto anuncio confirmado oficial
""".split())

STRUCTURED_POSITIVE = frozenset("""
gobierno ministerio oficial confirmado aprobado ley decreto anuncio presidente congreso
""".split())

NEGATIVE = frozenset("""
alienígenas ovni milagro fantasma bruja conspiración secreto misterio paranormal
""".split())

CATEGORY_KEYWORDS: Dict[str, FrozenSet[str]] = {
    "Educación": frozenset(["ley", "educativa", "ministerio", "gobierno", "reforma", "currículo"]),
    "Política": frozenset(["presidente", "gobierno", "congreso", "ley", "decreto", "anuncio"]),
    "Economía": frozenset(["economía", "inversión", "crecimiento", "ministerio", "finanzas"]),
    "Salud": frozenset(["salud", "hospital", "médico", "vacuna", "tratamiento"]),
    "Tecnología": frozenset(["tecnología", "digital", "innovación", "startup", "app"]),
}

CATEGORY_ALIASES = {
    "Education": "Educación",
    "Politics": "Política",
    "Economy": "Economía",
    "Health": "Salud",
    "Technology": "Tecnología",
}

BASE_SCORE = 50
NO_SIGNAL_REASON = "Análisis básico realizado."


def _hits(text: str, keywords: Iterable[str]) -> int:
    return sum(1 for k in keywords if k in text)


def category_keywords(category: str) -> FrozenSet[str]:
    name = CATEGORY_ALIASES.get(category, category)
    return CATEGORY_KEYWORDS.get(name, frozenset())


def score_plain_text(text: str) -> VerificationResult:
    low = (text or "").lower()
    positive = _hits(low, PLAIN_POSITIVE)
    negative = _hits(low, NEGATIVE)

    score = BASE_SCORE
    verdict = Verdict.INCONCLUSIVE
    reasoning = NO_SIGNAL_REASON
    if positive > 0 and negative == 0:
        score = min(85, BASE_SCORE + positive * 10)
        verdict = Verdict.LIKELY_TRUE
        reasoning = f"Contiene {positive} indicadores de credibilidad."
    elif negative > 0:
        score = max(15, BASE_SCORE - negative * 15)
        verdict = Verdict.LIKELY_FALSE
        reasoning = f"Contiene {negative} indicadores de baja credibilidad."

    log.debug("plain heuristic: +%d -%d -> %d", positive, negative, score)
    return VerificationResult(
        verdict=verdict,
        score=score,
        reasoning=reasoning,
        matched_source=None,
        method=Method.HEURISTIC_PLAIN,
        input_kind=InputKind.PLAIN_TEXT,
    )


def score_structured(record: NewsRecord) -> VerificationResult:
    low = f"{record.headline} {record.body}".lower()
    category_matches = _hits(low, category_keywords(record.category))
    positive = _hits(low, STRUCTURED_POSITIVE)
    negative = _hits(low, NEGATIVE)

    score = BASE_SCORE + category_matches * 5
    verdict = Verdict.INCONCLUSIVE
    reasoning = NO_SIGNAL_REASON
    if positive > 0 and negative == 0:
        score += positive * 8
        verdict = Verdict.LIKELY_TRUE
        reasoning = (
            f"Contiene {positive} indicadores de credibilidad y {category_matches} "
            f"términos relevantes de la categoría {record.category}."
        )
    elif negative > 0:
        score -= negative * 12
        verdict = Verdict.LIKELY_FALSE
        reasoning = f"Contiene {negative} indicadores de baja credibilidad."

    if record.has_source:
        score += 5
        reasoning += " Incluye fuente verificable."
    if record.has_date:
        score += 3

    score = max(15, min(95, score))
    log.debug(
        "structured heuristic: cat=%d +%d -%d -> %d", category_matches, positive, negative, score
    )
    return VerificationResult(
        verdict=verdict,
        score=score,
        reasoning=reasoning,
        matched_source=record.source if record.has_source else None,
        method=Method.HEURISTIC_STRUCTURED,
        input_kind=InputKind.STRUCTURED,
        metadata={
            "category": record.category,
            "date": record.date,
            "author": record.author,
            "location": record.location,
            "entities": record.named_entities,
        },
    )
