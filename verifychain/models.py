from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional, Union

from .schema import VerificationResult


class _In(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class VerifyIn(_In):
    news_text: Union[str, Dict[str, Any]] = Field(..., alias="newsText")  # URL, JSON string, plain text or object


class AnchoringOut(BaseModel):
    should_anchor: bool
    reason: str
    threshold_used: int
    anchored: bool = False
    outcome: Optional[Dict[str, Any]] = None  # AnchorOutcome; error set when the ledger failed


class VerifyOut(VerificationResult):
    anchoring: AnchoringOut


class AnchorIn(_In):
    news_text: Union[str, Dict[str, Any]] = Field(..., alias="newsText")
    result: VerificationResult


class AnchorBatchIn(_In):
    items: List[AnchorIn]


class FingerprintIn(_In):
    news_text: Union[str, Dict[str, Any]] = Field(..., alias="newsText")
    result: Dict[str, Any]


class IntegrityIn(_In):
    news_text: Union[str, Dict[str, Any]] = Field(..., alias="newsText")


class ThresholdIn(BaseModel):
    threshold: Any  # range and type checked by ThresholdStore -> 400


class SourceInfoIn(_In):
    name: str = Field("Sin nombre", alias="nombre")
    description: str = Field("Sin descripción", alias="descripcion")
    website: str = ""
    email: str = ""
    phone: str = Field("", alias="telefono")
    country: str = Field("Bolivia", alias="pais")
    trust_score: Any = Field(..., alias="trustScore")
    source_type: str = Field(..., alias="sourceType")


class SourceIn(_In):
    source_address: str = Field(..., alias="sourceAddress")
    source_info: SourceInfoIn = Field(..., alias="sourceInfo")


class SourceAddressIn(_In):
    source_address: str = Field(..., alias="sourceAddress")


class SourceScoreIn(_In):
    source_address: str = Field(..., alias="sourceAddress")
    min_trust_score: int = Field(..., alias="minTrustScore")


class TrustScoreIn(_In):
    source_address: str = Field(..., alias="sourceAddress")
    trust_score: Any = Field(..., alias="trustScore")


class SourceBatchItem(SourceInfoIn):
    source_address: str = Field(..., alias="sourceAddress")


class SourceBatchIn(_In):
    sources: List[SourceBatchItem]


class SourceAddressesIn(_In):
    source_addresses: List[str] = Field(..., alias="sourceAddresses")
