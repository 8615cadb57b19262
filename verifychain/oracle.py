# verifychain/oracle.py
import json
import logging
import math
from typing import Any, Dict, List, Optional, Union

import requests
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import Settings
from .errors import OracleMalformed, OracleUnavailable
from .heuristics import score_plain_text, score_structured
from .schema import (
    Method,
    NewsRecord,
    StructuredNews,
    Verdict,
    VerificationInput,
    VerificationResult,
)

log = logging.getLogger(__name__)

SYSTEM_PROMPT = "Eres un verificador de hechos experto en noticias bolivianas."

STRUCTURED_PROMPT = """
Eres un verificador de hechos boliviano experto. Analiza la siguiente noticia estructurada y responde SOLO con este JSON (sin explicaciones externas):

{{
  "veredicto": "Posiblemente Verdadera" | "Posiblemente Falsa" | "No concluyente",
  "score": número entre 0 y 100,
  "razonamiento": explicación breve en español,
  "fuenteCoincidente": url si la conoces o null,
  "entidades_identificadas": ["lista", "de", "entidades"],
  "categoria_verificada": "categoría de la noticia",
  "confianza_analisis": "Alta" | "Media" | "Baja"
}}

Noticia a evaluar:
- Titular: {headline}
- Fecha: {date}
- Autor: {author}
- Lugar: {location}
- Categoría: {category}
- Fuente: {source}
- Cuerpo: {body}
- Análisis semántico previo: {analysis}
"""

PLAIN_PROMPT = '''
Eres un verificador de hechos boliviano. Evalúa la siguiente noticia o declaración y responde SOLO con este JSON (sin ninguna explicación externa ni texto adicional):

{{
  "veredicto": "Posiblemente Verdadera" | "Posiblemente Falsa" | "No concluyente",
  "score": número entre 0 y 100,
  "razonamiento": explicación breve en español,
  "fuenteCoincidente": url si la conoces o null
}}

Texto a evaluar:
"""{text}"""
'''

VERDICT_ALIASES = {
    "posiblemente verdadera": Verdict.LIKELY_TRUE,
    "posiblemente falsa": Verdict.LIKELY_FALSE,
    "no concluyente": Verdict.INCONCLUSIVE,
    "likelytrue": Verdict.LIKELY_TRUE,
    "likely true": Verdict.LIKELY_TRUE,
    "likelyfalse": Verdict.LIKELY_FALSE,
    "likely false": Verdict.LIKELY_FALSE,
    "inconclusive": Verdict.INCONCLUSIVE,
}


def build_structured_prompt(record: NewsRecord) -> str:
    return STRUCTURED_PROMPT.format(
        headline=record.headline,
        date=record.date,
        author=record.author,
        location=record.location,
        category=record.category,
        source=record.source,
        body=record.body,
        analysis=json.dumps(dict(record.semantic_analysis), ensure_ascii=False, default=str),
    )


def build_plain_prompt(text: str) -> str:
    return PLAIN_PROMPT.format(text=text)


def build_prompt(vinput: VerificationInput) -> str:
    if isinstance(vinput, StructuredNews):
        return build_structured_prompt(vinput.record)
    return build_plain_prompt(vinput.content)


def extract_json_object(text: str) -> Union[Dict[str, Any], OracleMalformed]:
    """
    Best-effort extraction of the verdict object from free-form oracle text.

    Takes everything from the first "{" to the last "}" and parses it. Text
    holding two separate objects, or braces inside surrounding prose, will
    not parse. Failures are returned, not raised, so callers can branch on
    the result.
    """
    start = (text or "").find("{")
    end = (text or "").rfind("}")
    if start == -1 or end < start:
        return OracleMalformed("no JSON object in oracle reply")
    try:
        obj = json.loads(text[start:end + 1])
    except (ValueError, RecursionError) as e:
        return OracleMalformed(f"invalid JSON in oracle reply: {e}")
    if not isinstance(obj, dict):
        return OracleMalformed("oracle reply JSON is not an object")
    return obj


class _OracleReply(BaseModel):
    model_config = ConfigDict(extra="ignore")

    verdict: Verdict = Field(..., validation_alias=AliasChoices("veredicto", "verdict"))
    score: int = Field(..., validation_alias=AliasChoices("score", "puntaje"))
    reasoning: str = Field("", validation_alias=AliasChoices("razonamiento", "reasoning"))
    matched_source: Optional[str] = Field(
        None, validation_alias=AliasChoices("fuenteCoincidente", "matchedSource", "matched_source")
    )
    identified_entities: Optional[List[str]] = Field(
        None, validation_alias=AliasChoices("entidades_identificadas", "identifiedEntities", "identified_entities")
    )
    verified_category: Optional[str] = Field(
        None, validation_alias=AliasChoices("categoria_verificada", "verifiedCategory", "verified_category")
    )
    confidence: Optional[str] = Field(
        None, validation_alias=AliasChoices("confianza_analisis", "confidence")
    )

    @field_validator("verdict", mode="before")
    @classmethod
    def _verdict(cls, v):
        if isinstance(v, Verdict):
            return v
        key = str(v or "").strip().lower()
        if key not in VERDICT_ALIASES:
            raise ValueError(f"unknown verdict {v!r}")
        return VERDICT_ALIASES[key]

    @field_validator("score", mode="before")
    @classmethod
    def _score(cls, v):
        if isinstance(v, bool):
            raise ValueError("score must be numeric")
        try:
            n = float(v)
        except TypeError:
            raise ValueError("score must be numeric")
        if not math.isfinite(n):
            raise ValueError("score must be finite")
        return max(0, min(100, int(round(n))))

    @field_validator("reasoning", mode="before")
    @classmethod
    def _reasoning(cls, v):
        return "" if v is None else str(v)

    @field_validator("matched_source", "verified_category", "confidence", mode="before")
    @classmethod
    def _optional_text(cls, v):
        if v is None or isinstance(v, (dict, list)):
            return None
        return str(v)

    @field_validator("identified_entities", mode="before")
    @classmethod
    def _entities(cls, v):
        if not isinstance(v, (list, tuple)):
            return None
        return [str(e) for e in v]


def result_from_reply(obj: Dict[str, Any], vinput: VerificationInput) -> VerificationResult:
    """Map a parsed oracle object onto a VerificationResult; raises OracleMalformed."""
    try:
        reply = _OracleReply.model_validate(obj)
    except ValidationError as e:
        raise OracleMalformed(f"oracle reply does not match the verdict schema: {e.error_count()} error(s)") from e
    extras = {}
    if isinstance(vinput, StructuredNews):
        extras = {
            "identified_entities": reply.identified_entities,
            "verified_category": reply.verified_category,
            "confidence": reply.confidence,
        }
    return VerificationResult(
        verdict=reply.verdict,
        score=reply.score,
        reasoning=reply.reasoning,
        matched_source=reply.matched_source,
        method=Method.ORACLE,
        input_kind=vinput.kind,
        **extras,
    )


class OracleClient:
    """OpenAI-compatible chat-completions client (Groq by default)."""

    def __init__(self, api_key: str, url: str, model: str,
                 temperature: float = 0.3, max_tokens: int = 512, timeout: float = 30.0):
        self.api_key = api_key
        self.url = url
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "OracleClient":
        settings.require("ORACLE_API_KEY")
        return cls(
            api_key=settings.ORACLE_API_KEY,
            url=settings.ORACLE_URL,
            model=settings.ORACLE_MODEL,
            temperature=settings.ORACLE_TEMPERATURE,
            max_tokens=settings.ORACLE_MAX_TOKENS,
            timeout=settings.ORACLE_TIMEOUT,
        )

    def complete(self, prompt: str) -> str:
        """Send one prompt and return the reply text; raises OracleUnavailable."""
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        try:
            resp = requests.post(self.url, json=payload, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            raise OracleUnavailable(f"oracle returned HTTP {status}") from e
        except requests.RequestException as e:
            raise OracleUnavailable(f"oracle unreachable: {e.__class__.__name__}") from e
        except ValueError as e:
            raise OracleUnavailable("oracle response body is not JSON") from e

        try:
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise OracleUnavailable("oracle response carries no completion") from e


def heuristic_result(vinput: VerificationInput) -> VerificationResult:
    if isinstance(vinput, StructuredNews):
        return score_structured(vinput.record)
    return score_plain_text(vinput.content)


class OracleAdapter:
    """
    Oracle call with a guaranteed local fallback.

    `invoke` always returns a VerificationResult. Transport failures, non-2xx
    answers and unreadable replies all end in the heuristic scorer, applied
    to the input as already classified.
    """

    def __init__(self, client: Optional[OracleClient] = None):
        self.client = client

    def invoke(self, vinput: VerificationInput) -> VerificationResult:
        if self.client is None:
            log.info("No oracle configured; scoring %s input heuristically", vinput.kind.value)
            return heuristic_result(vinput)

        try:
            reply = self.client.complete(build_prompt(vinput))
            parsed = extract_json_object(reply)
            if isinstance(parsed, OracleMalformed):
                raise parsed
            result = result_from_reply(parsed, vinput)
        except OracleUnavailable as e:
            log.warning("Oracle unavailable (%s); using heuristic fallback", e)
            return heuristic_result(vinput)
        except OracleMalformed as e:
            log.warning("Oracle reply malformed (%s); using heuristic fallback", e)
            return heuristic_result(vinput)
        except Exception:
            log.exception("Unexpected oracle failure; using heuristic fallback")
            return heuristic_result(vinput)

        log.info("Oracle verdict %s (score %d)", result.verdict.value, result.score)
        return result
