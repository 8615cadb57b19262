import requests

from verifychain.errors import LedgerError
from verifychain.ledger import GatewayLedger, InMemoryLedger


class FakeOracle:
    """Stands in for OracleClient: returns canned text or raises."""

    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.prompts = []

    def complete(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


class BrokenLedger(InMemoryLedger):
    """Ledger whose writes always fail; reads still work."""

    def register_content_hash(self, content_hash, metadata):
        raise LedgerError("gateway unreachable")

    def register_many(self, hashes, metadatas):
        raise LedgerError("gateway unreachable")


class CountingLedger(InMemoryLedger):
    def __init__(self):
        super().__init__()
        self.register_calls = 0
        self.exists_calls = 0

    def register_content_hash(self, content_hash, metadata):
        self.register_calls += 1
        return super().register_content_hash(content_hash, metadata)

    def hash_exists(self, content_hash):
        self.exists_calls += 1
        return super().hash_exists(content_hash)


class RacingLedger(InMemoryLedger):
    """Another writer registers each hash between the existence check and our write."""

    def hash_exists(self, content_hash):
        exists = super().hash_exists(content_hash)
        if not exists:
            super().register_content_hash(content_hash, '{"by": "other"}')
        return exists


class FaultyLedger(InMemoryLedger):
    """Ledger with a bug: reads blow up with a non-ledger exception."""

    def hash_exists(self, content_hash):
        raise RuntimeError("decoder crashed")


class GatewayResponse:
    def __init__(self, body=None, status=200):
        self.body = body
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(str(self.status_code), response=self)

    def json(self):
        if isinstance(self.body, Exception):
            raise self.body
        return self.body


class FakeSession:
    """requests.Session replacement that replays canned gateway responses."""

    def __init__(self, results):
        self.results = list(results)
        self.calls = []
        self.headers = {}
        self.closed = False

    def post(self, url, json=None, timeout=None):
        self.calls.append({"url": url, "json": json, "timeout": timeout})
        nxt = self.results.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt

    def close(self):
        self.closed = True


def gateway(*responses):
    session = FakeSession(responses)
    ledger = GatewayLedger("https://gw.test/rpc", "secret", "0xhash", "0xsource",
                           signer_address="0xme", timeout=5, session=session)
    return ledger, session
