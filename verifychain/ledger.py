# verifychain/ledger.py
"""
Ledger collaborators: the content-hash registry and the source (trust) registry.

Two implementations share one interface:

* `InMemoryLedger` keeps an append-only registry in process memory. It is used
  when no gateway is configured and in tests.
* `GatewayLedger` speaks JSON-RPC 2.0 to a ledger gateway at LEDGER_RPC_URL.
  Every call names the target contract address in its params and carries
  the signing credential as a bearer token; signing, fees and receipts are
  the gateway's job.

The process holds a single ledger for its whole lifetime, acquired via
`open_ledger`.
"""
import itertools
import logging
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence

import requests

from .config import Settings
from .errors import ConfigurationInvalid, LedgerError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Receipt:
    transaction_id: str
    block_height: int


@dataclass(frozen=True)
class HashInfo:
    exists: bool
    timestamp: int = 0
    registrant: Optional[str] = None
    metadata: str = ""


@dataclass(frozen=True)
class SourceInfo:
    registered: bool
    timestamp: int = 0
    admin: Optional[str] = None
    metadata: str = ""
    trust_score: int = 0
    source_type: str = ""
    active: bool = False


@dataclass(frozen=True)
class SourceEntry:
    address: str
    metadata: str
    trust_score: int
    source_type: str


def validate_trust_score(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
        raise ConfigurationInvalid(f"trust score must be an integer between 0 and 100, got {value!r}")
    return value


class HashRegistry(ABC):
    @abstractmethod
    def register_content_hash(self, content_hash: str, metadata: str) -> Receipt: ...

    @abstractmethod
    def hash_exists(self, content_hash: str) -> bool: ...

    @abstractmethod
    def get_hash_info(self, content_hash: str) -> HashInfo: ...

    @abstractmethod
    def register_many(self, hashes: Sequence[str], metadatas: Sequence[str]) -> Receipt: ...

    @abstractmethod
    def hash_stats(self) -> Dict[str, int]: ...


class SourceRegistry(ABC):
    @abstractmethod
    def register_source(self, address: str, metadata: str, trust_score: int, source_type: str) -> Receipt: ...

    @abstractmethod
    def verify_source(self, address: str) -> bool: ...

    @abstractmethod
    def get_source_info(self, address: str) -> SourceInfo: ...

    @abstractmethod
    def verify_source_min_score(self, address: str, min_trust_score: int) -> bool: ...

    @abstractmethod
    def update_trust_score(self, address: str, trust_score: int) -> Receipt: ...

    @abstractmethod
    def deactivate_source(self, address: str) -> Receipt: ...

    @abstractmethod
    def reactivate_source(self, address: str) -> Receipt: ...

    @abstractmethod
    def register_many_sources(self, entries: Sequence[SourceEntry]) -> Receipt: ...

    @abstractmethod
    def verify_many_sources(self, addresses: Sequence[str]) -> List[bool]: ...

    @abstractmethod
    def source_stats(self) -> Dict[str, int]: ...

    @abstractmethod
    def is_admin(self, address: Optional[str] = None) -> bool: ...


class Ledger(HashRegistry, SourceRegistry):
    kind = "abstract"

    def close(self) -> None:
        pass


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class _SourceState:
    timestamp: int
    admin: str
    metadata: str
    trust_score: int
    source_type: str
    active: bool = True


class InMemoryLedger(Ledger):
    """
    Append-only registry held in memory; nothing survives a restart.

    Writes are serialised with a lock, so two concurrent registrations of the
    same hash yield one entry and one "already registered" error.
    """

    kind = "memory"

    def __init__(self, signer: str = "0x0000000000000000000000000000000000000001"):
        self.signer = signer
        self.admins = {signer}
        self._hashes: Dict[str, HashInfo] = {}
        self._sources: Dict[str, _SourceState] = {}
        self._height = itertools.count(1)
        self._tx = itertools.count(1)
        self._lock = threading.Lock()

    def _receipt(self) -> Receipt:
        return Receipt(transaction_id=f"0x{next(self._tx):064x}", block_height=next(self._height))

    def _source(self, address: str) -> _SourceState:
        state = self._sources.get(address)
        if state is None:
            raise LedgerError(f"source {address} is not registered")
        return state

    # hash registry

    def register_content_hash(self, content_hash, metadata):
        with self._lock:
            if content_hash in self._hashes:
                raise LedgerError(f"hash {content_hash} already registered")
            self._hashes[content_hash] = HashInfo(True, _now_ms(), self.signer, metadata)
            return self._receipt()

    def hash_exists(self, content_hash):
        return content_hash in self._hashes

    def get_hash_info(self, content_hash):
        return self._hashes.get(content_hash, HashInfo(exists=False))

    def register_many(self, hashes, metadatas):
        if len(hashes) != len(metadatas):
            raise LedgerError("hashes and metadatas differ in length")
        with self._lock:
            dupes = [h for h in hashes if h in self._hashes]
            if dupes or len(set(hashes)) != len(hashes):
                raise LedgerError("batch contains already registered or repeated hashes")
            ts = _now_ms()
            for h, meta in zip(hashes, metadatas):
                self._hashes[h] = HashInfo(True, ts, self.signer, meta)
            return self._receipt()

    def hash_stats(self):
        return {
            "total_hashes": len(self._hashes),
            "total_registrants": len({i.registrant for i in self._hashes.values()}),
        }

    # source registry

    def register_source(self, address, metadata, trust_score, source_type):
        validate_trust_score(trust_score)
        with self._lock:
            if address in self._sources:
                raise LedgerError(f"source {address} already registered")
            self._sources[address] = _SourceState(_now_ms(), self.signer, metadata, trust_score, source_type)
            return self._receipt()

    def verify_source(self, address):
        state = self._sources.get(address)
        return state is not None and state.active

    def get_source_info(self, address):
        state = self._sources.get(address)
        if state is None:
            return SourceInfo(registered=False)
        return SourceInfo(
            registered=True,
            timestamp=state.timestamp,
            admin=state.admin,
            metadata=state.metadata,
            trust_score=state.trust_score,
            source_type=state.source_type,
            active=state.active,
        )

    def verify_source_min_score(self, address, min_trust_score):
        return self.verify_source(address) and self._sources[address].trust_score >= min_trust_score

    def update_trust_score(self, address, trust_score):
        validate_trust_score(trust_score)
        with self._lock:
            self._source(address).trust_score = trust_score
            return self._receipt()

    def deactivate_source(self, address):
        with self._lock:
            state = self._source(address)
            if not state.active:
                raise LedgerError(f"source {address} is already inactive")
            state.active = False
            return self._receipt()

    def reactivate_source(self, address):
        with self._lock:
            state = self._source(address)
            if state.active:
                raise LedgerError(f"source {address} is already active")
            state.active = True
            return self._receipt()

    def register_many_sources(self, entries):
        for e in entries:
            validate_trust_score(e.trust_score)
        with self._lock:
            for e in entries:
                if e.address in self._sources:
                    raise LedgerError(f"source {e.address} already registered")
            ts = _now_ms()
            for e in entries:
                self._sources[e.address] = _SourceState(ts, self.signer, e.metadata, e.trust_score, e.source_type)
            return self._receipt()

    def verify_many_sources(self, addresses):
        return [self.verify_source(a) for a in addresses]

    def source_stats(self):
        active = sum(1 for s in self._sources.values() if s.active)
        return {
            "total_sources": len(self._sources),
            "active_sources": active,
            "total_admins": len(self.admins),
        }

    def is_admin(self, address=None):
        return (address or self.signer) in self.admins


def _quantity(value) -> int:
    """Integer from a gateway field: int, decimal string or 0x-prefixed hex."""
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise TypeError(f"expected a quantity, got {value!r}")
    if isinstance(value, str):
        text = value.strip()
        return int(text, 16) if text.lower().startswith("0x") else int(text)
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"expected a whole quantity, got {value!r}")
    return int(value)


def _flag(method: str, value) -> bool:
    if not isinstance(value, bool):
        raise LedgerError(f"{method}: expected a boolean result, got {value!r}")
    return value


def _record(method: str, value) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise LedgerError(f"{method}: expected an object result, got {type(value).__name__}")
    return value


def _text(value, default: Optional[str] = "") -> Optional[str]:
    if value is None:
        return default
    if not isinstance(value, str):
        raise TypeError(f"expected a string, got {value!r}")
    return value


@contextmanager
def _decoding(method: str) -> Iterator[None]:
    try:
        yield
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise LedgerError(f"{method}: unexpected result ({e})") from e


class GatewayLedger(Ledger):
    """
    JSON-RPC 2.0 client for a ledger gateway.

    Results are checked before use: flags must be real booleans, records
    must be objects and quantities may be decimal or 0x-hex. Anything else
    raises LedgerError.
    """

    kind = "gateway"

    def __init__(self, rpc_url: str, signing_key: str, hash_registry: str, source_registry: str,
                 signer_address: Optional[str] = None, timeout: float = 30.0,
                 session: Optional[requests.Session] = None):
        self.rpc_url = rpc_url
        self.hash_registry = hash_registry
        self.source_registry = source_registry
        self.signer_address = signer_address
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {signing_key}"})
        self._ids = itertools.count(1)

    @classmethod
    def from_settings(cls, settings: Settings) -> "GatewayLedger":
        settings.require("LEDGER_RPC_URL", "LEDGER_SIGNING_KEY", "HASH_REGISTRY_ADDRESS", "SOURCE_REGISTRY_ADDRESS")
        return cls(
            rpc_url=settings.LEDGER_RPC_URL,
            signing_key=settings.LEDGER_SIGNING_KEY,
            hash_registry=settings.HASH_REGISTRY_ADDRESS,
            source_registry=settings.SOURCE_REGISTRY_ADDRESS,
            signer_address=settings.LEDGER_SIGNER_ADDRESS,
            timeout=settings.LEDGER_TIMEOUT,
        )

    def _call(self, method: str, contract: str, **params) -> Any:
        body = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": {"contract": contract, **params},
        }
        try:
            resp = self.session.post(self.rpc_url, json=body, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as e:
            raise LedgerError(f"{method}: ledger gateway unreachable ({e.__class__.__name__})") from e
        except ValueError as e:
            raise LedgerError(f"{method}: ledger gateway answered with non-JSON body") from e

        if not isinstance(data, dict):
            raise LedgerError(f"{method}: malformed JSON-RPC response")
        if data.get("error"):
            err = data["error"]
            msg = err.get("message") if isinstance(err, dict) else str(err)
            raise LedgerError(f"{method}: {msg}")
        if "result" not in data:
            raise LedgerError(f"{method}: JSON-RPC response carries no result")
        return data["result"]

    def _receipt(self, method: str, contract: str, **params) -> Receipt:
        res = _record(method, self._call(method, contract, **params))
        with _decoding(method):
            tx = _text(res["transactionId"], None)
            if not tx:
                raise ValueError("empty transactionId")
            return Receipt(transaction_id=tx, block_height=_quantity(res["blockHeight"]))

    # hash registry

    def register_content_hash(self, content_hash, metadata):
        return self._receipt("registerNewsHash", self.hash_registry, hash=content_hash, metadata=metadata)

    def hash_exists(self, content_hash):
        return _flag("existsHash", self._call("existsHash", self.hash_registry, hash=content_hash))

    def get_hash_info(self, content_hash):
        res = _record("getHashInfo", self._call("getHashInfo", self.hash_registry, hash=content_hash))
        with _decoding("getHashInfo"):
            return HashInfo(
                exists=_flag("getHashInfo", res.get("exists", False)),
                timestamp=_quantity(res.get("timestamp")),
                registrant=_text(res.get("registrant"), None),
                metadata=_text(res.get("metadata")),
            )

    def register_many(self, hashes, metadatas):
        return self._receipt("registerMultipleHashes", self.hash_registry,
                             hashes=list(hashes), metadatas=list(metadatas))

    def hash_stats(self):
        res = _record("getRegistryStats", self._call("getRegistryStats", self.hash_registry))
        with _decoding("getRegistryStats"):
            return {
                "total_hashes": _quantity(res.get("totalHashes")),
                "total_registrants": _quantity(res.get("totalRegistrants")),
            }

    # source registry

    def register_source(self, address, metadata, trust_score, source_type):
        validate_trust_score(trust_score)
        return self._receipt("registerSource", self.source_registry, source=address,
                             metadata=metadata, trustScore=trust_score, sourceType=source_type)

    def verify_source(self, address):
        return _flag("verifySource", self._call("verifySource", self.source_registry, source=address))

    def get_source_info(self, address):
        res = _record("getSourceInfo", self._call("getSourceInfo", self.source_registry, source=address))
        with _decoding("getSourceInfo"):
            return SourceInfo(
                registered=_flag("getSourceInfo", res.get("registered", False)),
                timestamp=_quantity(res.get("timestamp")),
                admin=_text(res.get("admin"), None),
                metadata=_text(res.get("metadata")),
                trust_score=_quantity(res.get("trustScore")),
                source_type=_text(res.get("sourceType")),
                active=_flag("getSourceInfo", res.get("isActive", False)),
            )

    def verify_source_min_score(self, address, min_trust_score):
        res = self._call("verifySourceWithMinScore", self.source_registry,
                         source=address, minTrustScore=min_trust_score)
        return _flag("verifySourceWithMinScore", res)

    def update_trust_score(self, address, trust_score):
        validate_trust_score(trust_score)
        return self._receipt("updateTrustScore", self.source_registry, source=address, trustScore=trust_score)

    def deactivate_source(self, address):
        return self._receipt("deactivateSource", self.source_registry, source=address)

    def reactivate_source(self, address):
        return self._receipt("reactivateSource", self.source_registry, source=address)

    def register_many_sources(self, entries):
        for e in entries:
            validate_trust_score(e.trust_score)
        return self._receipt(
            "registerMultipleSources", self.source_registry,
            sources=[e.address for e in entries],
            metadatas=[e.metadata for e in entries],
            trustScores=[e.trust_score for e in entries],
            sourceTypes=[e.source_type for e in entries],
        )

    def verify_many_sources(self, addresses):
        addresses = list(addresses)
        res = self._call("verifyMultipleSources", self.source_registry, sources=addresses)
        if not isinstance(res, list) or len(res) != len(addresses):
            raise LedgerError(f"verifyMultipleSources: expected {len(addresses)} flags, got {res!r}")
        return [_flag("verifyMultipleSources", r) for r in res]

    def source_stats(self):
        res = _record("getSourceRegistryStats", self._call("getSourceRegistryStats", self.source_registry))
        with _decoding("getSourceRegistryStats"):
            return {
                "total_sources": _quantity(res.get("totalSources")),
                "active_sources": _quantity(res.get("activeSources")),
                "total_admins": _quantity(res.get("totalAdmins")),
            }

    def is_admin(self, address=None):
        who = address or self.signer_address
        if not who:
            raise LedgerError("no signer address configured")
        return _flag("isAdminAddress", self._call("isAdminAddress", self.source_registry, admin=who))

    def close(self):
        self.session.close()


def build_ledger(settings: Settings) -> Ledger:
    if not settings.LEDGER_RPC_URL:
        log.warning("LEDGER_RPC_URL not set; anchoring to an in-memory ledger")
        return InMemoryLedger()
    ledger = GatewayLedger.from_settings(settings)
    log.info("Ledger gateway %s (hash registry %s, source registry %s)",
             ledger.rpc_url, ledger.hash_registry, ledger.source_registry)
    return ledger


@contextmanager
def open_ledger(settings: Settings) -> Iterator[Ledger]:
    ledger = build_ledger(settings)
    try:
        yield ledger
    finally:
        ledger.close()
