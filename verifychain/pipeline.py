# verifychain/pipeline.py
import logging
from dataclasses import dataclass
from typing import Any, Optional

from .anchoring import AnchorOutcome, AnchoringCoordinator, content_of, decide
from .classify import classify
from .config import ThresholdStore
from .oracle import OracleAdapter
from .schema import AnchoringDecision, VerificationResult

log = logging.getLogger(__name__)


def verify(raw: Any, adapter: OracleAdapter) -> VerificationResult:
    """
    Classify the raw input and obtain a verdict for it.

    The adapter falls back to the heuristic scorer on its own, so this never
    fails: every call returns a VerificationResult.
    """
    vinput = classify(raw)
    log.info("Verifying %s input", vinput.kind.value)
    return adapter.invoke(vinput)


@dataclass
class VerifiedAndAnchored:
    result: VerificationResult
    decision: AnchoringDecision
    outcome: Optional[AnchorOutcome] = None

    @property
    def anchored(self) -> bool:
        return self.outcome is not None and self.outcome.success


def verify_and_anchor(raw: Any, adapter: OracleAdapter, coordinator: AnchoringCoordinator,
                      threshold: ThresholdStore) -> VerifiedAndAnchored:
    result = verify(raw, adapter)
    # read at decision time so a threshold update applies to the next request
    decision = decide(result, threshold.get())
    if not decision.should_anchor:
        log.info("%s, not anchoring", decision.reason)
        return VerifiedAndAnchored(result, decision)

    log.info("%s, anchoring", decision.reason)
    outcome = coordinator.anchor(content_of(raw), result)
    return VerifiedAndAnchored(result, decision, outcome)
