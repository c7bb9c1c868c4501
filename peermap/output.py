"""Output renderer: rich table formatter, JSON formatter, format dispatch."""

import dataclasses
import json
import logging
import sys
from io import StringIO

from rich.console import Console
from rich.table import Table

from peermap.models import Snapshot
from peermap.stats import summarize

logger = logging.getLogger(__name__)

# (header, PeerRecord attribute) pairs for the peer table.
_RECORD_COLUMNS = [
    ("Address", "raw_address"),
    ("Hostname", "dns_hostname"),
    ("User agent", "user_agent"),
    ("Height", "block_height"),
    ("Country", "country"),
    ("City", "city"),
    ("Org", "org_name"),
    ("ASN", "org_asn"),
]

# How many entries to show in the distribution tables.
_TOP_N = 10


def render(
    snapshot: Snapshot,
    fmt: str,
    *,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Dispatch output to the appropriate formatter.

    Args:
        snapshot: Snapshot to render.
        fmt: Output format: ``"table"`` or ``"json"``.
        file: Writable file object for output (default: ``sys.stdout``).
        width: Explicit console width (default: auto-detect).

    Raises:
        ValueError: If *fmt* is not ``"table"`` or ``"json"``.
    """
    if fmt == "table":
        render_table(snapshot, file=file, width=width)
    elif fmt == "json":
        render_json(snapshot, file=file)
    else:
        raise ValueError(f"Unknown output format: {fmt!r}")


# ---------------------------------------------------------------------------
# Table (rich) formatter
# ---------------------------------------------------------------------------


def render_table(
    snapshot: Snapshot,
    *,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Render the peer table followed by country and ASN summaries."""
    out = file or sys.stdout
    console = Console(file=out, highlight=False, width=width)

    records = snapshot.records
    updated = snapshot.last_updated.strftime("%Y-%m-%d %H:%M:%S %Z")
    table = Table(title=f"{len(records)} peers — updated {updated}")
    for header, _ in _RECORD_COLUMNS:
        table.add_column(header)
    for record in records:
        table.add_row(*[_fmt(getattr(record, attr)) for _, attr in _RECORD_COLUMNS])
    console.print(table)

    summary = summarize(records)
    console.print(
        f"  {summary.total} records, {summary.located} located, "
        f"{len(summary.country_distribution)} countries"
    )

    if summary.country_distribution:
        t = Table(title="Top countries")
        t.add_column("Country")
        t.add_column("Peers", justify="right")
        for country, count in summary.country_distribution[:_TOP_N]:
            t.add_row(country, str(count))
        console.print(t)

    if summary.asn_distribution:
        t = Table(title="Top ASNs")
        t.add_column("ASN / Org")
        t.add_column("Peers", justify="right")
        for label, count in summary.asn_distribution[:_TOP_N]:
            t.add_row(label, str(count))
        console.print(t)


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------


def render_json(snapshot: Snapshot, *, file: object | None = None) -> None:
    """Render *snapshot* as JSON: ``lastUpdated`` plus a ``records`` list."""
    out = file or sys.stdout
    payload = {
        "lastUpdated": snapshot.last_updated.isoformat(),
        "records": [dataclasses.asdict(r) for r in snapshot.records],
    }
    json.dump(payload, out, indent=2, default=str)
    out.write("\n")  # type: ignore[union-attr]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _fmt(value: object) -> str:
    """Format a field value for table display.

    Empty strings and ``None`` become ``"—"``.
    """
    if value is None or value == "":
        return "—"
    return str(value)


def render_to_string(snapshot: Snapshot, fmt: str, *, width: int = 200) -> str:
    """Render to a string instead of stdout; useful for testing.

    Args:
        snapshot: Snapshot to render.
        fmt: Output format: ``"table"`` or ``"json"``.
        width: Console width for table rendering (default: 200).

    Returns:
        The rendered output as a string.
    """
    buf = StringIO()
    render(snapshot, fmt, file=buf, width=width)
    return buf.getvalue()
