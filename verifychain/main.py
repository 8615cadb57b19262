# verifychain/main.py
import json
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .anchoring import AnchoringCoordinator, content_of, verification_fingerprint
from .config import Settings, ThresholdStore, settings as default_settings
from .errors import ConfigurationInvalid, LedgerError
from .extract import article_text, extract_from_url, looks_like_url
from .ledger import Ledger, SourceEntry, open_ledger
from .models import (
    AnchorBatchIn,
    AnchorIn,
    AnchoringOut,
    FingerprintIn,
    IntegrityIn,
    SourceAddressIn,
    SourceAddressesIn,
    SourceBatchIn,
    SourceIn,
    SourceInfoIn,
    SourceScoreIn,
    ThresholdIn,
    TrustScoreIn,
    VerifyIn,
    VerifyOut,
)
from .oracle import OracleAdapter, OracleClient
from .pipeline import verify_and_anchor

log = logging.getLogger(__name__)

ENDPOINTS = [
    "POST /verify - verify a news item (anchored automatically when score >= threshold)",
    "POST /anchor - anchor an existing verification",
    "POST /anchor/batch - anchor several verifications at once",
    "POST /fingerprint - fingerprint of a text and its verification result",
    "GET /hashes/{hash} - look up an anchored fingerprint",
    "POST /integrity - look up anchored content by its text",
    "GET /hashes-stats - hash registry statistics",
    "POST /sources - register a trusted source",
    "GET /sources/{address} - look up a source",
    "POST /sources/check-score - check a source against a minimum trust score",
    "POST /sources/trust-score - update a source's trust score",
    "POST /sources/deactivate - deactivate a source",
    "POST /sources/reactivate - reactivate a source",
    "POST /sources/batch - register several sources",
    "POST /sources/verify-batch - verify several sources",
    "GET /sources-stats - source registry statistics",
    "GET /admin - whether the configured signer is a registry admin",
    "POST /threshold - set the anchoring threshold",
    "GET /stats - current threshold and endpoint list",
]


def source_metadata(info: SourceInfoIn) -> str:
    return json.dumps({
        "name": info.name,
        "description": info.description,
        "website": info.website,
        "email": info.email,
        "phone": info.phone,
        "country": info.country,
        "timestamp": int(time.time() * 1000),
    }, ensure_ascii=False)


# --- Dependencies ---

def get_ledger(request: Request) -> Ledger:
    return request.app.state.ledger


def get_adapter(request: Request) -> OracleAdapter:
    return request.app.state.adapter


def get_coordinator(request: Request) -> AnchoringCoordinator:
    return request.app.state.coordinator


def get_threshold(request: Request) -> ThresholdStore:
    return request.app.state.threshold


def create_app(settings: Optional[Settings] = None, ledger: Optional[Ledger] = None,
               oracle: Optional[OracleClient] = None) -> FastAPI:
    """
    Build the API. The ledger, oracle client and threshold store are created
    once per process in the lifespan handler; `ledger` and `oracle` may be
    injected instead (tests).
    """
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = oracle
        if client is None and settings.oracle_configured:
            client = OracleClient.from_settings(settings)
        if client is None:
            log.warning("ORACLE_API_KEY not set; every verification uses the heuristic scorer")
        app.state.adapter = OracleAdapter(client)
        app.state.threshold = ThresholdStore(settings.ANCHOR_THRESHOLD)

        if ledger is not None:
            app.state.ledger = ledger
            app.state.coordinator = AnchoringCoordinator(ledger)
            yield
            return
        with open_ledger(settings) as opened:
            app.state.ledger = opened
            app.state.coordinator = AnchoringCoordinator(opened)
            yield

    app = FastAPI(title="VerifyChain (news verification + ledger anchoring)", lifespan=lifespan)

    # --- Middleware ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ConfigurationInvalid)
    async def _config_invalid(request: Request, exc: ConfigurationInvalid):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(LedgerError)
    async def _ledger_error(request: Request, exc: LedgerError):
        log.error("Ledger call failed on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=502, content={"error": str(exc)})

    # --- Routes ---

    @app.get("/health")
    def health(ledger: Ledger = Depends(get_ledger), adapter: OracleAdapter = Depends(get_adapter)):
        return {"ok": True, "oracle": adapter.client is not None, "ledger": ledger.kind}

    @app.post("/verify", response_model=VerifyOut)
    def verify(payload: VerifyIn = Body(...),
               adapter: OracleAdapter = Depends(get_adapter),
               coordinator: AnchoringCoordinator = Depends(get_coordinator),
               threshold: ThresholdStore = Depends(get_threshold)):
        """
        Verify a news item and anchor the verdict when its score reaches the
        threshold. `newsText` may be a URL (the article text is fetched), a
        JSON news record (string or object) or plain text. A failed anchoring
        is reported under `anchoring.outcome`; the verdict is always returned.
        """
        raw: Any = payload.news_text
        if looks_like_url(raw):
            try:
                raw = article_text(extract_from_url(raw.strip()))
            except Exception as e:
                log.warning("URL extraction failed for %s: %s", raw, e)
                raise HTTPException(status_code=422, detail=f"could not extract text from URL ({e.__class__.__name__})")

        run = verify_and_anchor(raw, adapter, coordinator, threshold)
        anchoring = AnchoringOut(
            should_anchor=run.decision.should_anchor,
            reason=run.decision.reason if run.outcome is None or run.outcome.success
            else f"{run.decision.reason} pero falló la subida",
            threshold_used=run.decision.threshold_used,
            anchored=run.anchored,
            outcome=run.outcome.to_dict() if run.outcome else None,
        )
        return VerifyOut(**run.result.model_dump(), anchoring=anchoring)

    @app.post("/anchor")
    def anchor(payload: AnchorIn, coordinator: AnchoringCoordinator = Depends(get_coordinator)):
        return coordinator.anchor(content_of(payload.news_text), payload.result).to_dict()

    @app.post("/anchor/batch")
    def anchor_batch(payload: AnchorBatchIn, coordinator: AnchoringCoordinator = Depends(get_coordinator)):
        items = [(content_of(i.news_text), i.result) for i in payload.items]
        return coordinator.anchor_many(items).to_dict()

    @app.post("/fingerprint")
    def make_fingerprint(payload: FingerprintIn):
        return {
            "fingerprint": verification_fingerprint(content_of(payload.news_text), payload.result),
            "message": "Fingerprint created; look it up with GET /hashes/{hash}",
        }

    @app.get("/hashes/{content_hash}")
    def hash_info(content_hash: str, ledger: Ledger = Depends(get_ledger)):
        return {"hash": content_hash, **asdict(ledger.get_hash_info(content_hash))}

    @app.post("/integrity")
    def integrity(payload: IntegrityIn, coordinator: AnchoringCoordinator = Depends(get_coordinator)):
        content_hash, info = coordinator.check_integrity(content_of(payload.news_text))
        return {"hash": content_hash, "intact": info.exists, **asdict(info)}

    @app.get("/hashes-stats")
    def hash_stats(ledger: Ledger = Depends(get_ledger)):
        return ledger.hash_stats()

    @app.post("/sources")
    def register_source(payload: SourceIn, ledger: Ledger = Depends(get_ledger)):
        info = payload.source_info
        receipt = ledger.register_source(
            payload.source_address, source_metadata(info), info.trust_score, info.source_type
        )
        return {"source_address": payload.source_address, **asdict(receipt)}

    @app.get("/sources/{address}")
    def source_info(address: str, ledger: Ledger = Depends(get_ledger)):
        return {
            "source_address": address,
            "verified": ledger.verify_source(address),
            **asdict(ledger.get_source_info(address)),
        }

    @app.post("/sources/check-score")
    def check_source_score(payload: SourceScoreIn, ledger: Ledger = Depends(get_ledger)):
        ok = ledger.verify_source_min_score(payload.source_address, payload.min_trust_score)
        return {"source_address": payload.source_address, "min_trust_score": payload.min_trust_score,
                "meets_requirement": ok}

    @app.post("/sources/trust-score")
    def update_trust_score(payload: TrustScoreIn, ledger: Ledger = Depends(get_ledger)):
        receipt = ledger.update_trust_score(payload.source_address, payload.trust_score)
        return {"source_address": payload.source_address, "trust_score": payload.trust_score, **asdict(receipt)}

    @app.post("/sources/deactivate")
    def deactivate_source(payload: SourceAddressIn, ledger: Ledger = Depends(get_ledger)):
        return {"source_address": payload.source_address, **asdict(ledger.deactivate_source(payload.source_address))}

    @app.post("/sources/reactivate")
    def reactivate_source(payload: SourceAddressIn, ledger: Ledger = Depends(get_ledger)):
        return {"source_address": payload.source_address, **asdict(ledger.reactivate_source(payload.source_address))}

    @app.post("/sources/batch")
    def register_sources(payload: SourceBatchIn, ledger: Ledger = Depends(get_ledger)):
        entries = [
            SourceEntry(s.source_address, source_metadata(s), s.trust_score, s.source_type)
            for s in payload.sources
        ]
        receipt = ledger.register_many_sources(entries)
        return {"registered": [e.address for e in entries], **asdict(receipt)}

    @app.post("/sources/verify-batch")
    def verify_sources(payload: SourceAddressesIn, ledger: Ledger = Depends(get_ledger)):
        flags = ledger.verify_many_sources(payload.source_addresses)
        return {"results": [{"source_address": a, "verified": f} for a, f in zip(payload.source_addresses, flags)]}

    @app.get("/sources-stats")
    def source_stats(ledger: Ledger = Depends(get_ledger)):
        return ledger.source_stats()

    @app.get("/admin")
    def admin(ledger: Ledger = Depends(get_ledger)):
        return {"is_admin": ledger.is_admin()}

    @app.post("/threshold")
    def set_threshold(payload: ThresholdIn, threshold: ThresholdStore = Depends(get_threshold)):
        value = threshold.set(payload.threshold)
        log.info("Anchoring threshold set to %d", value)
        return {"message": f"Threshold set to {value}%", "threshold": value}

    @app.get("/stats")
    def stats(threshold: ThresholdStore = Depends(get_threshold)) -> Dict[str, Any]:
        return {"threshold": threshold.get(), "endpoints": ENDPOINTS}

    return app


logging.basicConfig(
    level=default_settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()
