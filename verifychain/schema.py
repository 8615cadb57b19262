# verifychain/schema.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class InputKind(str, Enum):
    STRUCTURED = "Structured"
    PLAIN_TEXT = "PlainText"


class Verdict(str, Enum):
    LIKELY_TRUE = "LikelyTrue"
    LIKELY_FALSE = "LikelyFalse"
    INCONCLUSIVE = "Inconclusive"


class Method(str, Enum):
    ORACLE = "Oracle"
    HEURISTIC_STRUCTURED = "HeuristicStructured"
    HEURISTIC_PLAIN = "HeuristicPlain"


# sentinels for absent record fields
NO_HEADLINE = "Sin titular"
NO_DATE = "Sin fecha"
NO_AUTHOR = "Sin autor"
NO_LOCATION = "Sin lugar"
NO_CATEGORY = "Sin categoría"
NO_SOURCE = "Sin fuente"


@dataclass(frozen=True)
class NewsRecord:
    headline: str = NO_HEADLINE
    date: str = NO_DATE
    author: str = NO_AUTHOR
    location: str = NO_LOCATION
    category: str = NO_CATEGORY
    source: str = NO_SOURCE
    body: str = ""
    semantic_analysis: Mapping[str, Any] = field(default_factory=dict)

    @property
    def has_source(self) -> bool:
        return bool(self.source) and self.source != NO_SOURCE

    @property
    def has_date(self) -> bool:
        return bool(self.date) and self.date != NO_DATE

    @property
    def named_entities(self) -> List[Any]:
        sa = self.semantic_analysis or {}
        ents = sa.get("entidades_nombradas", sa.get("named_entities")) or []
        return list(ents) if isinstance(ents, (list, tuple)) else []


@dataclass(frozen=True)
class PlainText:
    content: str

    @property
    def kind(self) -> InputKind:
        return InputKind.PLAIN_TEXT


@dataclass(frozen=True)
class StructuredNews:
    record: NewsRecord
    raw: Mapping[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> InputKind:
        return InputKind.STRUCTURED


VerificationInput = Union[PlainText, StructuredNews]


class VerificationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    verdict: Verdict
    score: int = Field(..., ge=0, le=100)
    reasoning: str
    matched_source: Optional[str] = None
    method: Method
    input_kind: InputKind
    # oracle-only extras
    identified_entities: Optional[List[str]] = None
    verified_category: Optional[str] = None
    confidence: Optional[str] = None
    # heuristic structured path only
    metadata: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class AnchoringDecision:
    should_anchor: bool
    reason: str
    threshold_used: int
