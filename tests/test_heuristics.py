import pytest

from verifychain.heuristics import (
    CATEGORY_KEYWORDS,
    NEGATIVE,
    PLAIN_POSITIVE,
    category_keywords,
    score_plain_text,
    score_structured,
)
from verifychain.schema import InputKind, Method, NewsRecord, Verdict

PLAIN_POS = ["elecciones", "presidente", "gobierno", "ministerio", "congreso",
             "ley", "decreto", "anuncio", "confirmado", "oficial"]
NEG = ["alienígenas", "ovni", "milagro", "fantasma", "bruja",
       "conspiración", "secreto", "misterio", "paranormal"]


def test_keyword_sets_match_lists():
    assert PLAIN_POSITIVE == frozenset(PLAIN_POS)
    assert NEGATIVE == frozenset(NEG)


def test_plain_example_scenario():
    res = score_plain_text("El gobierno confirmó la nueva ley")
    assert res.verdict is Verdict.LIKELY_TRUE
    assert res.score == 70
    assert res.method is Method.HEURISTIC_PLAIN
    assert res.input_kind is InputKind.PLAIN_TEXT
    assert res.matched_source is None
    assert "2 indicadores de credibilidad" in res.reasoning


@pytest.mark.parametrize("k", range(1, len(PLAIN_POS) + 1))
def test_plain_positive_only(k):
    res = score_plain_text(" ".join(PLAIN_POS[:k]))
    assert res.verdict is Verdict.LIKELY_TRUE
    assert res.score == min(85, 50 + 10 * k)


@pytest.mark.parametrize("k", range(1, len(NEG) + 1))
def test_plain_negative_dominates(k):
    res = score_plain_text(" ".join(NEG[:k]) + " gobierno ley")
    assert res.verdict is Verdict.LIKELY_FALSE
    assert res.score == max(15, 50 - 15 * k)
    assert f"{k} indicadores de baja credibilidad" in res.reasoning


def test_plain_counts_presence_not_frequency():
    assert score_plain_text("ley ley ley ley").score == 60
    assert score_plain_text("OVNI ovni Ovni").score == 35


def test_plain_no_keywords_is_inconclusive():
    res = score_plain_text("Hoy llovió en La Paz")
    assert res.verdict is Verdict.INCONCLUSIVE
    assert res.score == 50


def test_plain_is_case_insensitive():
    assert score_plain_text("GOBIERNO").score == 60


def _record(**kw):
    base = dict(category="Educación", source="ABI", date="2024-03-01")
    base.update(kw)
    return NewsRecord(**base)


def test_structured_example_scenario():
    # category: ley, educativa, ministerio (3); positive: ley, ministerio (2)
    res = score_structured(_record(body="ley educativa ministerio"))
    assert res.score == 50 + 15 + 16 + 5 + 3
    assert res.verdict is Verdict.LIKELY_TRUE
    assert res.method is Method.HEURISTIC_STRUCTURED
    assert res.input_kind is InputKind.STRUCTURED
    assert res.matched_source == "ABI"


def test_structured_two_category_two_positive():
    res = score_structured(_record(body="ley ministerio"))
    assert res.score == 84
    assert "2 indicadores de credibilidad y 2 términos relevantes" in res.reasoning
    assert res.reasoning.endswith("Incluye fuente verificable.")


@pytest.mark.parametrize("body,m,p", [
    ("reforma", 1, 0),
    ("reforma currículo", 2, 0),
    ("gobierno", 1, 1),
    ("oficial aprobado decreto", 0, 3),
    ("gobierno ministerio ley reforma educativa currículo oficial aprobado decreto anuncio", 6, 7),
])
def test_structured_known_category_without_negatives(body, m, p):
    res = score_structured(NewsRecord(category="Educación", body=body))
    assert res.score == max(15, min(95, 50 + 5 * m + 8 * p))


def test_structured_negative_branch():
    res = score_structured(_record(headline="Avistan ovni", body="conspiración del gobierno"))
    # category: gobierno (1); negatives: ovni, conspiración (2)
    assert res.verdict is Verdict.LIKELY_FALSE
    assert res.score == 50 + 5 - 24 + 5 + 3


def test_structured_clamps():
    low = score_structured(NewsRecord(body=" ".join(NEG)))
    assert low.score == 15
    high = score_structured(_record(
        body="gobierno ministerio oficial confirmado aprobado ley decreto anuncio presidente congreso"
    ))
    assert high.score == 95


def test_structured_missing_source_and_date():
    res = score_structured(NewsRecord(category="Salud", body="nuevo hospital"))
    assert res.score == 55
    assert res.verdict is Verdict.INCONCLUSIVE
    assert res.matched_source is None
    assert "fuente" not in res.reasoning


def test_structured_unknown_category_has_no_category_bonus():
    res = score_structured(NewsRecord(category="Deportes", body="ley"))
    assert res.score == 58


def test_category_aliases():
    assert category_keywords("Education") == CATEGORY_KEYWORDS["Educación"]
    assert category_keywords("Nada") == frozenset()


def test_structured_metadata_carries_record_fields():
    rec = NewsRecord(category="Política", author="Ana", location="Sucre",
                     semantic_analysis={"entidades_nombradas": ["Congreso"]})
    res = score_structured(rec)
    assert res.metadata == {
        "category": "Política",
        "date": "Sin fecha",
        "author": "Ana",
        "location": "Sucre",
        "entities": ["Congreso"],
    }


def test_scoring_is_pure():
    rec = _record(body="ley ministerio")
    assert score_structured(rec) == score_structured(rec)
    assert score_plain_text("ovni") == score_plain_text("ovni")
