"""Tests for sync wire models and pairing payloads."""

from __future__ import annotations

import json

import pytest

from lanvault.models.entry import Entry, ImportResult, SyncEntry
from lanvault.models.sync import MessageType, SyncMessage, parse_pairing_payload


class TestPairingPayload:
    def test_json_form(self):
        info = parse_pairing_payload(
            json.dumps({"ip": "192.168.1.20", "port": 51821, "deviceId": "d-1", "name": "Phone"})
        )
        assert info.ip == "192.168.1.20"
        assert info.port == 51821
        assert info.device_id == "d-1"
        assert info.name == "Phone"

    def test_json_form_without_optional_fields(self):
        info = parse_pairing_payload('{"ip": "10.0.0.5", "port": "4000"}')
        assert (info.ip, info.port, info.device_id) == ("10.0.0.5", 4000, None)

    def test_ip_port_form(self):
        info = parse_pairing_payload("192.168.1.20:51821")
        assert (info.ip, info.port) == ("192.168.1.20", 51821)

    def test_ipv6_form(self):
        info = parse_pairing_payload("[::1]:9000")
        assert (info.ip, info.port) == ("::1", 9000)

    @pytest.mark.parametrize(
        "payload",
        [
            "",
            "not a payload",
            "192.168.1.20",
            "192.168.1.20:port",
            "example.com:80",
            "{not json",
            '{"ip": "1.2.3.4"}',
            "1.2.3.4:0",
            "1.2.3.4:70000",
        ],
    )
    def test_invalid(self, payload):
        with pytest.raises(ValueError):
            parse_pairing_payload(payload)


class TestSyncEntry:
    def test_wire_form_is_camel_case(self):
        entry = SyncEntry(
            id="e1",
            title="GitHub",
            totp_secret="JBSWY3DP",
            folder_id="f",
            is_favorite=True,
            created_at=1,
            modified_at=2,
        )
        wire = entry.to_wire()
        assert wire["totpSecret"] == "JBSWY3DP"
        assert wire["folderId"] == "f"
        assert wire["isFavorite"] is True
        assert wire["createdAt"] == 1
        assert wire["modifiedAt"] == 2

    def test_parses_camel_case(self):
        entry = SyncEntry.model_validate(
            {"id": "e1", "title": "T", "createdAt": 5, "modifiedAt": 6, "totpSecret": None}
        )
        assert entry.modified_at == 6
        assert entry.username == ""

    def test_null_text_fields_become_empty(self):
        entry = SyncEntry.model_validate(
            {"id": "e1", "title": None, "password": None, "createdAt": 1, "modifiedAt": 1}
        )
        assert entry.title == ""
        assert entry.password == ""

    def test_entry_converts_to_sync_entry(self):
        entry = Entry(id="e1", title="T", username="u", created_at=1, modified_at=2, sync_version=4)
        sync_entry = entry.to_sync_entry()
        assert sync_entry.id == "e1"
        assert sync_entry.modified_at == 2


class TestMessages:
    def test_request_id_serialized_as_camel_case(self):
        raw = json.loads(SyncMessage(type=MessageType.PING.value, request_id="r1").to_bytes())
        assert raw["requestId"] == "r1"
        assert raw["type"] == "ping"
        assert isinstance(raw["timestamp"], int)

    def test_request_id_omitted_when_absent(self):
        raw = json.loads(SyncMessage(type="welcome").to_bytes())
        assert "requestId" not in raw

    def test_import_result_total(self):
        result = ImportResult(imported=1, updated=2, skipped=3)
        assert result.total == 6
