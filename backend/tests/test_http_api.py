"""
backend/tests/test_http_api.py

Purpose:
    HTTP surface: request/response shapes, error body mapping and the
    quote → sign → submit → status round trip through FastAPI.
"""

import base64

import base58
import pytest
from fastapi.testclient import TestClient
from solders.keypair import Keypair

from conftest import MINT, ONE_UNIT, make_orchestrator
from relayer.api.app import create_app


@pytest.fixture
def client(chain, sponsor, ledger):
    app = create_app(make_orchestrator(chain, sponsor, ledger=ledger))
    with TestClient(app) as test_client:
        yield test_client


def _quote_body(sender: Keypair, recipient, amount=5 * ONE_UNIT):
    return {"fromAddress": str(sender.pubkey()), "toAddress": str(recipient), "amount": amount, "coin": str(MINT)}


def test_quote_sign_submit_status_round_trip(client, sender, recipient):
    quote = client.post("/quote", json=_quote_body(sender, recipient))
    assert quote.status_code == 200
    payload = quote.json()
    assert payload["fee"] == 5000
    assert payload["priceSource"] == "fixed"
    assert payload["breakdown"]["winner"] == "percentage"

    message = base64.b64decode(payload["transactionTemplate"]["message"])
    signature = sender.sign_message(message)
    submit_body = {
        **_quote_body(sender, recipient),
        "quoteId": payload["quoteId"],
        "signature": {"bytes": "0x" + bytes(signature).hex(), "publicKey": str(sender.pubkey())},
    }
    submitted = client.post("/submit", json=submit_body)
    assert submitted.status_code == 200
    result = submitted.json()
    assert result["status"] == "success"
    assert result["fee"] == 5000

    first = client.get(f"/status/{result['hash']}").json()
    second = client.get(f"/status/{result['hash']}").json()
    assert first == second
    assert first["status"] == "success"


def test_signature_as_byte_array_is_accepted(client, sender, recipient):
    payload = client.post("/quote", json=_quote_body(sender, recipient)).json()
    message = base64.b64decode(payload["transactionTemplate"]["message"])
    submit_body = {
        **_quote_body(sender, recipient),
        "signature": {
            "bytes": list(bytes(sender.sign_message(message))),
            "publicKey": list(bytes(sender.pubkey())),
        },
    }

    assert client.post("/submit", json=submit_body).json()["status"] == "success"


def test_address_mismatch_maps_to_401(client, sender, recipient):
    payload = client.post("/quote", json=_quote_body(sender, recipient)).json()
    message = base64.b64decode(payload["transactionTemplate"]["message"])
    impostor = Keypair()
    submit_body = {
        **_quote_body(sender, recipient),
        "signature": {
            "bytes": base58.b58encode(bytes(impostor.sign_message(message))).decode(),
            "publicKey": str(impostor.pubkey()),
        },
    }

    response = client.post("/submit", json=submit_body)

    assert response.status_code == 401
    assert response.json()["error"]["reason"] == "address-mismatch"


@pytest.mark.parametrize(
    "override, reason",
    [
        ({"amount": 0}, "validation-error"),
        ({"amount": "1.5"}, "validation-error"),
        ({"toAddress": "not-an-address"}, "validation-error"),
        ({"coin": str(Keypair().pubkey())}, "unsupported-coin"),
    ],
)
def test_malformed_quote_requests_are_400(client, sender, recipient, override, reason):
    response = client.post("/quote", json={**_quote_body(sender, recipient), **override})

    assert response.status_code == 400
    assert response.json()["error"]["reason"] == reason


def test_missing_fields_use_the_error_body(client):
    response = client.post("/quote", json={"fromAddress": "x"})

    assert response.status_code == 400
    assert response.json()["error"]["reason"] == "validation-error"


def test_safety_limit_maps_to_429_with_details(client, sender, recipient, chain):
    chain.fund(sender.pubkey(), 100 * ONE_UNIT)
    response = client.post("/quote", json=_quote_body(sender, recipient, amount=11 * ONE_UNIT))
    payload = response.json()
    message = base64.b64decode(payload["transactionTemplate"]["message"])
    submit_body = {
        **_quote_body(sender, recipient, amount=11 * ONE_UNIT),
        "signature": {"bytes": "0x" + bytes(sender.sign_message(message)).hex(), "publicKey": str(sender.pubkey())},
    }

    response = client.post("/submit", json=submit_body)

    assert response.status_code == 429
    error = response.json()["error"]
    assert error["reason"] == "safety-limit-exceeded"
    assert error["limit"] == "single-transaction"
    assert error["cap"] == 10 * ONE_UNIT


def test_upstream_outage_maps_to_503(client, sender, recipient, chain):
    chain.unavailable = True

    response = client.post("/quote", json=_quote_body(sender, recipient))

    assert response.status_code == 503
    assert response.json()["error"]["reason"] == "upstream-unavailable"
    assert response.json()["error"]["retryable"] is True


def test_health_safety_stats_and_stats(client, sponsor):
    health = client.get("/health").json()
    assert health["status"] == "ok"
    assert health["sponsorAddress"] == str(sponsor.pubkey())

    safety = client.get("/safety-stats").json()
    assert set(safety) == {"limits", "currentUsage"}
    assert safety["limits"]["maxSingleTransaction"] == 10 * ONE_UNIT

    stats = client.get("/stats").json()
    assert stats["ledger"] == "ok"
    assert stats["totalTransactions"] == 0
