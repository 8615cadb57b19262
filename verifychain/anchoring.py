# verifychain/anchoring.py
import hashlib
import json
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .errors import LedgerError
from .ledger import HashInfo, HashRegistry
from .schema import AnchoringDecision, VerificationResult

log = logging.getLogger(__name__)

METADATA_PREVIEW_CHARS = 200


def decide(result: VerificationResult, threshold: int) -> AnchoringDecision:
    """Anchor when the score reaches the threshold. Pure; the caller supplies the threshold."""
    if result.score >= threshold:
        return AnchoringDecision(True, f"Score alto ({result.score}% >= {threshold}%)", threshold)
    return AnchoringDecision(False, f"Score bajo ({result.score}% < {threshold}%)", threshold)


def content_of(raw: Any) -> str:
    """Canonical text form of a verified input, used for fingerprinting."""
    if isinstance(raw, str):
        return raw
    return json.dumps(raw, ensure_ascii=False, sort_keys=True, separators=(",", ":"), default=str)


def fingerprint(content: str) -> str:
    return "0x" + hashlib.sha256(content.encode("utf-8")).hexdigest()


def verification_fingerprint(content: str, result: Dict[str, Any]) -> str:
    """Fingerprint of a text together with the verdict issued for it."""
    return fingerprint(content + json.dumps(result, ensure_ascii=False, sort_keys=True, default=str))


def build_metadata(content: str, result: VerificationResult) -> str:
    return json.dumps({
        "text": content[:METADATA_PREVIEW_CHARS],
        "verdict": result.verdict.value,
        "score": result.score,
        "method": result.method.value,
        "input_kind": result.input_kind.value,
        "timestamp": int(time.time() * 1000),
    }, ensure_ascii=False)


@dataclass
class AnchorOutcome:
    success: bool
    content_hash: str
    already_anchored: bool = False
    transaction_id: Optional[str] = None
    block_height: Optional[int] = None
    metadata: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BatchOutcome:
    success: bool
    registered: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    transaction_id: Optional[str] = None
    block_height: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AnchoringCoordinator:
    """
    Registers verification fingerprints with the hash registry.

    Anchoring is check-then-register: content already present is reported as
    anchored without a second entry. When a registration is rejected and the
    hash turns out to be present, another request got there first and the
    content counts as already anchored. Ledger failures come back inside the
    outcome and are never raised, so a verdict is always delivered.
    """

    def __init__(self, registry: HashRegistry):
        self.registry = registry

    def anchor(self, content: str, result: VerificationResult) -> AnchorOutcome:
        content_hash = fingerprint(content)
        try:
            return self._anchor(content, content_hash, result)
        except LedgerError as e:
            log.error("Anchoring %s failed: %s", content_hash, e)
            return AnchorOutcome(False, content_hash, error=str(e))
        except Exception as e:
            log.exception("Anchoring %s failed unexpectedly", content_hash)
            return AnchorOutcome(False, content_hash, error=f"{e.__class__.__name__}: {e}")

    def _already_anchored(self, content_hash: str) -> AnchorOutcome:
        info = self.registry.get_hash_info(content_hash)
        log.info("Content %s already anchored; not registering again", content_hash)
        return AnchorOutcome(True, content_hash, already_anchored=True, metadata=info.metadata)

    def _anchor(self, content: str, content_hash: str, result: VerificationResult) -> AnchorOutcome:
        if self.registry.hash_exists(content_hash):
            return self._already_anchored(content_hash)

        metadata = build_metadata(content, result)
        try:
            receipt = self.registry.register_content_hash(content_hash, metadata)
        except LedgerError:
            if self.registry.hash_exists(content_hash):
                return self._already_anchored(content_hash)
            raise

        log.info("Anchored %s in tx %s (block %d)", content_hash, receipt.transaction_id, receipt.block_height)
        return AnchorOutcome(
            True,
            content_hash,
            transaction_id=receipt.transaction_id,
            block_height=receipt.block_height,
            metadata=metadata,
        )

    def anchor_many(self, items: Sequence[Tuple[str, VerificationResult]]) -> BatchOutcome:
        hashes: List[str] = []
        metadatas: List[str] = []
        skipped: List[str] = []
        try:
            for content, result in items:
                h = fingerprint(content)
                if h in hashes or self.registry.hash_exists(h):
                    skipped.append(h)
                    continue
                hashes.append(h)
                metadatas.append(build_metadata(content, result))

            if not hashes:
                return BatchOutcome(True, skipped=skipped)
            receipt = self.registry.register_many(hashes, metadatas)
        except LedgerError as e:
            log.error("Batch anchoring of %d item(s) failed: %s", len(items), e)
            return BatchOutcome(False, skipped=skipped, error=str(e))
        except Exception as e:
            log.exception("Batch anchoring of %d item(s) failed unexpectedly", len(items))
            return BatchOutcome(False, skipped=skipped, error=f"{e.__class__.__name__}: {e}")

        log.info("Anchored %d hash(es) in tx %s, skipped %d", len(hashes), receipt.transaction_id, len(skipped))
        return BatchOutcome(
            True,
            registered=hashes,
            skipped=skipped,
            transaction_id=receipt.transaction_id,
            block_height=receipt.block_height,
        )

    def check_integrity(self, content: str) -> Tuple[str, HashInfo]:
        """Fingerprint `content` and look it up; raises LedgerError."""
        content_hash = fingerprint(content)
        return content_hash, self.registry.get_hash_info(content_hash)
