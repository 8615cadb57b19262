# verifychain/classify.py
"""
Input-shape classification.

Raw request input is either free text or a structured news record, possibly
serialized as a JSON string. `classify` turns any input into exactly one
variant of the tagged union (`PlainText` or `StructuredNews`) and never
raises: a JSON parse error or a failed record-shape validation simply means
the input is plain text.
"""
import json
import logging
from typing import Any, Dict, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .schema import (
    NO_AUTHOR,
    NO_CATEGORY,
    NO_DATE,
    NO_HEADLINE,
    NO_LOCATION,
    NO_SOURCE,
    NewsRecord,
    PlainText,
    StructuredNews,
    VerificationInput,
)

log = logging.getLogger(__name__)

WRAPPER_KEYS = ("noticia", "news")

_TEXT_FIELDS = ("headline", "date", "author", "location", "category", "source", "body")


class _RecordFields(BaseModel):
    """Lenient view over a news record; every field is optional."""

    model_config = ConfigDict(extra="ignore")

    headline: Optional[str] = Field(None, validation_alias=AliasChoices("titular", "headline"))
    date: Optional[str] = Field(None, validation_alias=AliasChoices("fecha", "date"))
    author: Optional[str] = Field(None, validation_alias=AliasChoices("autor", "author"))
    location: Optional[str] = Field(None, validation_alias=AliasChoices("lugar", "location"))
    category: Optional[str] = Field(None, validation_alias=AliasChoices("categoria", "category"))
    source: Optional[str] = Field(None, validation_alias=AliasChoices("fuente", "source"))
    body: Optional[str] = Field(None, validation_alias=AliasChoices("cuerpo", "body"))
    semantic_analysis: Optional[Dict[Any, Any]] = Field(
        None, validation_alias=AliasChoices("analisis_semantico", "semantic_analysis")
    )

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def _scalar_text(cls, v):
        # nested values are not text; blanks count as missing
        if v is None or isinstance(v, (dict, list, tuple, set)):
            return None
        s = str(v).strip()
        return s or None

    @field_validator("semantic_analysis", mode="before")
    @classmethod
    def _mapping(cls, v):
        return dict(v) if isinstance(v, Mapping) else None


class _NewsShape(_RecordFields):
    """A bare (unwrapped) object only counts as news if it has a headline or body."""

    @model_validator(mode="after")
    def _looks_like_news(self):
        if self.headline is None and self.body is None:
            raise ValueError("object carries neither headline nor body")
        return self


def _unwrap(payload: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    for key in WRAPPER_KEYS:
        inner = payload.get(key)
        if isinstance(inner, Mapping):
            return inner
    return None


def _is_news(obj: Any) -> bool:
    if not isinstance(obj, Mapping):
        return False
    if _unwrap(obj) is not None:
        return True
    try:
        _NewsShape.model_validate(dict(obj))
    except ValidationError:
        return False
    return True


def extract_record(payload: Mapping[str, Any]) -> NewsRecord:
    """Normalize a (possibly wrapped) structured payload into a fully populated NewsRecord."""
    inner = _unwrap(payload)
    fields = _RecordFields.model_validate(dict(inner if inner is not None else payload))
    return NewsRecord(
        headline=fields.headline or NO_HEADLINE,
        date=fields.date or NO_DATE,
        author=fields.author or NO_AUTHOR,
        location=fields.location or NO_LOCATION,
        category=fields.category or NO_CATEGORY,
        source=fields.source or NO_SOURCE,
        body=fields.body or "",
        semantic_analysis=fields.semantic_analysis or {},
    )


def _as_text(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    try:
        return json.dumps(raw, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(raw)


def classify(raw: Any) -> VerificationInput:
    """Tag raw input as StructuredNews or PlainText. Total: never raises."""
    candidate = raw
    if isinstance(raw, str):
        try:
            candidate = json.loads(raw)
        except (ValueError, RecursionError):
            candidate = None

    if _is_news(candidate):
        vinput: VerificationInput = StructuredNews(record=extract_record(candidate), raw=dict(candidate))
    else:
        vinput = PlainText(content=_as_text(raw))
    log.debug("input classified as %s", vinput.kind.value)
    return vinput
