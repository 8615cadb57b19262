import json

import requests

from verifychain import main as main_mod
from verifychain.anchoring import fingerprint

from tests.fakes import BrokenLedger, FakeOracle, GatewayResponse, gateway


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True, "oracle": True, "ledger": "memory"}


def test_verify_plain_text_anchors_above_threshold(client, ledger):
    r = client.post("/verify", json={"newsText": "El gobierno confirmó la nueva ley"})
    assert r.status_code == 200
    body = r.json()
    assert body["verdict"] == "LikelyTrue"
    assert body["score"] == 70
    assert body["method"] == "HeuristicPlain"
    assert body["input_kind"] == "PlainText"
    assert body["anchoring"]["should_anchor"] is True
    assert body["anchoring"]["anchored"] is True
    assert body["anchoring"]["threshold_used"] == 70
    assert body["anchoring"]["outcome"]["content_hash"] == fingerprint("El gobierno confirmó la nueva ley")
    assert ledger.hash_exists(fingerprint("El gobierno confirmó la nueva ley"))


def test_verify_same_text_twice_registers_once(client, ledger):
    client.post("/verify", json={"newsText": "gobierno ley decreto"})
    r = client.post("/verify", json={"newsText": "gobierno ley decreto"})
    assert r.json()["anchoring"]["outcome"]["already_anchored"] is True
    assert ledger.hash_stats()["total_hashes"] == 1


def test_verify_structured_object(client):
    news = {"noticia": {"categoria": "Educación", "cuerpo": "ley ministerio",
                        "fuente": "ABI", "fecha": "2024-03-01"}}
    r = client.post("/verify", json={"newsText": news})
    body = r.json()
    assert body["score"] == 84
    assert body["method"] == "HeuristicStructured"
    assert body["input_kind"] == "Structured"
    assert body["matched_source"] == "ABI"


def test_verify_structured_json_string(client):
    news = json.dumps({"noticia": {"titular": "Avistan ovni", "cuerpo": "conspiración"}})
    body = client.post("/verify", json={"newsText": news}).json()
    assert body["verdict"] == "LikelyFalse"
    assert body["anchoring"]["should_anchor"] is False
    assert body["anchoring"]["outcome"] is None
    assert body["anchoring"]["reason"].startswith("Score bajo")


def test_verify_uses_oracle_when_available(make_client):
    oracle = FakeOracle(reply='Respuesta: {"veredicto": "No concluyente", "score": 55, "razonamiento": "x"}')
    client = make_client(oracle=oracle)
    body = client.post("/verify", json={"newsText": "algo"}).json()
    assert body["method"] == "Oracle"
    assert body["verdict"] == "Inconclusive"
    assert body["score"] == 55


def test_verify_anchoring_failure_is_a_sub_field(make_client, unavailable_oracle):
    client = make_client(ledger=BrokenLedger(), oracle=unavailable_oracle)
    r = client.post("/verify", json={"newsText": "El gobierno confirmó la nueva ley"})
    assert r.status_code == 200
    body = r.json()
    assert body["score"] == 70
    assert body["anchoring"]["anchored"] is False
    assert body["anchoring"]["outcome"]["error"] == "gateway unreachable"
    assert body["anchoring"]["reason"].endswith("pero falló la subida")


def test_verify_with_off_format_gateway_reply_stays_ok(make_client, unavailable_oracle):
    ledger, _ = gateway(
        GatewayResponse({"result": True}),
        GatewayResponse({"result": ["not", "a", "record"]}),
    )
    client = make_client(ledger=ledger, oracle=unavailable_oracle)
    r = client.post("/verify", json={"newsText": "El gobierno confirmó la nueva ley"})
    assert r.status_code == 200
    body = r.json()
    assert body["verdict"] == "LikelyTrue"
    assert body["anchoring"]["anchored"] is False
    assert "getHashInfo" in body["anchoring"]["outcome"]["error"]


def test_verify_requires_news_text(client):
    assert client.post("/verify", json={}).status_code == 422


def test_verify_url_extracts_text(client, monkeypatch):
    seen = {}

    def fake_extract(url):
        seen["url"] = url
        return {"title": "Decreto oficial", "text": "El presidente firmó", "url": url, "source": "abi.bo"}

    monkeypatch.setattr(main_mod, "extract_from_url", fake_extract)
    body = client.post("/verify", json={"newsText": "https://abi.bo/noticia"}).json()
    assert seen["url"] == "https://abi.bo/noticia"
    # decreto, oficial, presidente
    assert body["score"] == 80


def test_verify_url_extraction_failure_is_client_error(client, monkeypatch):
    def boom(url):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(main_mod, "extract_from_url", boom)
    assert client.post("/verify", json={"newsText": "http://nowhere.test"}).status_code == 422


def test_threshold_configuration(client):
    r = client.post("/threshold", json={"threshold": 90})
    assert r.status_code == 200
    assert r.json()["threshold"] == 90
    assert client.get("/stats").json()["threshold"] == 90

    body = client.post("/verify", json={"newsText": "gobierno ley decreto"}).json()
    assert body["score"] == 80
    assert body["anchoring"]["should_anchor"] is False
    assert body["anchoring"]["threshold_used"] == 90


def test_threshold_rejects_out_of_range(client):
    for bad in (-1, 101, "setenta", 12.5):
        r = client.post("/threshold", json={"threshold": bad})
        assert r.status_code == 400
    assert client.get("/stats").json()["threshold"] == 70


def test_manual_anchor_and_lookup(client):
    result = {"verdict": "LikelyTrue", "score": 60, "reasoning": "r",
              "method": "Oracle", "input_kind": "PlainText"}
    r = client.post("/anchor", json={"newsText": "noticia manual", "result": result})
    assert r.json()["success"] is True
    h = r.json()["content_hash"]

    info = client.get(f"/hashes/{h}").json()
    assert info["exists"] is True
    assert json.loads(info["metadata"])["score"] == 60

    integ = client.post("/integrity", json={"newsText": "noticia manual"}).json()
    assert integ["intact"] is True and integ["hash"] == h
    assert client.post("/integrity", json={"newsText": "otra"}).json()["intact"] is False
    assert client.get("/hashes-stats").json()["total_hashes"] == 1


def test_anchor_batch(client):
    result = {"verdict": "LikelyTrue", "score": 80, "reasoning": "r",
              "method": "Oracle", "input_kind": "PlainText"}
    items = [{"newsText": t, "result": result} for t in ("a", "b", "a")]
    body = client.post("/anchor/batch", json={"items": items}).json()
    assert body["success"] is True
    assert len(body["registered"]) == 2
    assert body["skipped"] == [fingerprint("a")]


def test_fingerprint_endpoint(client):
    body = client.post("/fingerprint", json={"newsText": "t", "result": {"score": 1}}).json()
    assert body["fingerprint"].startswith("0x") and len(body["fingerprint"]) == 66


def test_source_endpoints(client):
    r = client.post("/sources", json={
        "sourceAddress": "0xabi",
        "sourceInfo": {"nombre": "ABI", "trustScore": 85, "sourceType": "agencia"},
    })
    assert r.status_code == 200
    assert r.json()["block_height"] >= 1

    info = client.get("/sources/0xabi").json()
    assert info["verified"] is True
    assert info["trust_score"] == 85
    assert json.loads(info["metadata"])["name"] == "ABI"
    assert json.loads(info["metadata"])["country"] == "Bolivia"

    chk = client.post("/sources/check-score", json={"sourceAddress": "0xabi", "minTrustScore": 90}).json()
    assert chk["meets_requirement"] is False

    client.post("/sources/trust-score", json={"sourceAddress": "0xabi", "trustScore": 95})
    chk = client.post("/sources/check-score", json={"sourceAddress": "0xabi", "minTrustScore": 90}).json()
    assert chk["meets_requirement"] is True

    assert client.post("/sources/deactivate", json={"sourceAddress": "0xabi"}).status_code == 200
    assert client.get("/sources/0xabi").json()["verified"] is False
    assert client.post("/sources/reactivate", json={"sourceAddress": "0xabi"}).status_code == 200

    stats = client.get("/sources-stats").json()
    assert stats["total_sources"] == 1 and stats["active_sources"] == 1
    assert client.get("/admin").json() == {"is_admin": True}


def test_source_batch_endpoints(client):
    r = client.post("/sources/batch", json={"sources": [
        {"sourceAddress": "0x1", "nombre": "Uno", "trustScore": 70, "sourceType": "medio"},
        {"sourceAddress": "0x2", "nombre": "Dos", "trustScore": 40, "sourceType": "blog"},
    ]})
    assert r.json()["registered"] == ["0x1", "0x2"]
    body = client.post("/sources/verify-batch", json={"sourceAddresses": ["0x1", "0x9"]}).json()
    assert body["results"] == [
        {"source_address": "0x1", "verified": True},
        {"source_address": "0x9", "verified": False},
    ]


def test_source_errors_map_to_status_codes(client):
    bad = client.post("/sources", json={
        "sourceAddress": "0xbad", "sourceInfo": {"trustScore": 150, "sourceType": "medio"},
    })
    assert bad.status_code == 400
    missing = client.post("/sources/deactivate", json={"sourceAddress": "0xnone"})
    assert missing.status_code == 502
    assert "not registered" in missing.json()["error"]


def test_stats_lists_endpoints(client):
    body = client.get("/stats").json()
    assert body["threshold"] == 70
    assert any(e.startswith("POST /verify") for e in body["endpoints"])
