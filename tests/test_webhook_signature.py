"""
Wire payload serialization and HMAC signing.
"""
import base64
import hashlib
import hmac
import json
import re
from datetime import datetime, timezone

from app.services.webhook_dispatcher import WebhookPayload, build_payload_json
from app.services.webhook_service import generate_webhook_signature

TIMESTAMP = datetime(2026, 3, 1, 10, 15, 30, 123456)


def test_signature_is_base64_hmac_sha256():
    expected = base64.b64encode(
        hmac.new(b"secret", b'{"a":1}', hashlib.sha256).digest()
    ).decode()
    assert generate_webhook_signature('{"a":1}', "secret") == expected


def test_payload_keys_are_camel_case_and_unsigned_without_secret():
    body = json.loads(build_payload_json("invoice.created", "ACME", {"invoiceId": 42}, TIMESTAMP))

    assert body == {
        "eventType": "invoice.created",
        "clientCode": "ACME",
        "timestamp": "2026-03-01T10:15:30Z",
        "data": {"invoiceId": 42},
    }


def test_timestamp_is_second_precision_utc():
    aware = datetime(2026, 3, 1, 15, 45, 30, tzinfo=timezone.utc)
    text = WebhookPayload(event_type="x", client_code="ACME", timestamp=aware).to_json()

    timestamp = json.loads(text)["timestamp"]
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z", timestamp)
    assert timestamp == "2026-03-01T15:45:30Z"


def test_signed_payload_verifies_against_unsigned_serialization():
    payload_json = build_payload_json(
        "invoice.created",
        "ACME",
        {"invoiceId": 42},
        TIMESTAMP,
        secret_key="s3cr3t",
    )
    body = json.loads(payload_json)
    signature = body.pop("signature")

    unsigned = json.dumps(body, separators=(",", ":"))
    assert unsigned == build_payload_json("invoice.created", "ACME", {"invoiceId": 42}, TIMESTAMP)
    assert signature == generate_webhook_signature(unsigned, "s3cr3t")


def test_signature_changes_with_secret():
    a = json.loads(build_payload_json("e", "ACME", {}, TIMESTAMP, secret_key="one"))["signature"]
    b = json.loads(build_payload_json("e", "ACME", {}, TIMESTAMP, secret_key="two"))["signature"]
    assert a != b


def test_signature_is_deterministic_and_sensitive_to_every_byte():
    payload_json = build_payload_json("invoice.created", "ACME", {"invoiceId": 42}, TIMESTAMP)
    altered = payload_json.replace('"invoiceId":42', '"invoiceId":43')
    assert altered != payload_json

    assert generate_webhook_signature(payload_json, "s3cr3t") == generate_webhook_signature(payload_json, "s3cr3t")
    assert generate_webhook_signature(altered, "s3cr3t") != generate_webhook_signature(payload_json, "s3cr3t")


def test_same_event_signs_identically_twice():
    first = build_payload_json("invoice.created", "ACME", {"invoiceId": 42}, TIMESTAMP, secret_key="s3cr3t")
    second = build_payload_json("invoice.created", "ACME", {"invoiceId": 42}, TIMESTAMP, secret_key="s3cr3t")
    assert first == second
