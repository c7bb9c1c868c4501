"""Tests for the output renderer."""

import json
from datetime import UTC, datetime

import pytest

from peermap.models import PeerRecord, Snapshot
from peermap.output import render, render_to_string

# -- Fixtures ----------------------------------------------------------------

_UPDATED = datetime(2026, 10, 1, 12, 0, tzinfo=UTC)


def _make_record(**overrides: object) -> PeerRecord:
    """Create a ``PeerRecord`` with sensible defaults, overridable."""
    defaults: dict = {
        "raw_address": "203.0.113.5:8333",
        "ip": "203.0.113.5",
    }
    defaults.update(overrides)
    return PeerRecord(**defaults)


def _snapshot() -> Snapshot:
    records = (
        _make_record(
            raw_address="8.8.8.8:8333",
            ip="8.8.8.8",
            dns_hostname="dns.google",
            user_agent="/Satoshi:27.0.0/",
            block_height=850000,
            location=(37.4, -122.1),
            country="US",
            city="Mountain View",
            org_name="Google LLC",
            org_asn="AS15169",
        ),
        _make_record(
            raw_address="203.0.113.7:8333",
            ip="203.0.113.7",
            country="DE",
            city="Frankfurt",
            org_name="Hetzner Online GmbH",
            org_asn="AS24940",
        ),
        _make_record(raw_address="203.0.113.8:8333", ip="203.0.113.8", country="US"),
    )
    return Snapshot(records=records, last_updated=_UPDATED)


# -- render() dispatch -------------------------------------------------------


class TestRenderDispatch:
    """render() routes to the correct formatter."""

    def test_unknown_format_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown output format"):
            render(_snapshot(), "xml")

    def test_table_format_produces_output(self) -> None:
        assert len(render_to_string(_snapshot(), "table")) > 0

    def test_json_format_produces_output(self) -> None:
        json.loads(render_to_string(_snapshot(), "json"))


# -- table -------------------------------------------------------------------


class TestTableFormat:
    def test_title_counts_peers(self) -> None:
        output = render_to_string(_snapshot(), "table")
        assert "3 peers" in output
        assert "2026-10-01 12:00:00" in output

    def test_contains_record_values(self) -> None:
        output = render_to_string(_snapshot(), "table")
        assert "8.8.8.8:8333" in output
        assert "dns.google" in output
        assert "Mountain View" in output
        assert "AS24940" in output
        assert "850000" in output

    def test_empty_fields_show_dash(self) -> None:
        snapshot = Snapshot(records=(_make_record(),), last_updated=_UPDATED)
        assert "—" in render_to_string(snapshot, "table")

    def test_summary_line(self) -> None:
        output = render_to_string(_snapshot(), "table")
        assert "3 records, 1 located, 2 countries" in output

    def test_distribution_tables(self) -> None:
        output = render_to_string(_snapshot(), "table")
        assert "Top countries" in output
        assert "Top ASNs" in output
        assert "AS15169 / Google LLC" in output

    def test_empty_snapshot(self) -> None:
        output = render_to_string(Snapshot(records=(), last_updated=_UPDATED), "table")
        assert "0 peers" in output
        assert "Top countries" not in output


# -- json --------------------------------------------------------------------


class TestJsonFormat:
    def test_structure(self) -> None:
        data = json.loads(render_to_string(_snapshot(), "json"))

        assert data["lastUpdated"] == "2026-10-01T12:00:00+00:00"
        assert len(data["records"]) == 3
        first = data["records"][0]
        assert first["ip"] == "8.8.8.8"
        assert first["dns_hostname"] == "dns.google"
        assert first["location"] == [37.4, -122.1]
        assert first["org_asn"] == "AS15169"

    def test_unknown_location_is_null(self) -> None:
        data = json.loads(render_to_string(_snapshot(), "json"))
        assert data["records"][1]["location"] is None

    def test_writes_to_file(self, tmp_path) -> None:
        path = tmp_path / "out.json"
        with path.open("w", encoding="utf-8") as fh:
            render(_snapshot(), "json", file=fh)
        assert json.loads(path.read_text(encoding="utf-8"))["records"]
