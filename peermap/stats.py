"""Snapshot statistics: country and ASN distribution."""

from dataclasses import dataclass, field

from peermap.models import PeerRecord


@dataclass
class SnapshotSummary:
    """Distribution statistics computed from a list of peer records.

    Attributes:
        country_distribution: ``(country, count)`` pairs sorted by count
            descending.
        asn_distribution: ``("AS#### / org", count)`` pairs sorted by
            count descending.
        located: Records carrying coordinates.
        total: All records.
    """

    country_distribution: list[tuple[str, int]] = field(default_factory=list)
    asn_distribution: list[tuple[str, int]] = field(default_factory=list)
    located: int = 0
    total: int = 0


def summarize(records: list[PeerRecord] | tuple[PeerRecord, ...]) -> SnapshotSummary:
    """Compute country and ASN distributions for *records*.

    Records without a country or ASN are left out of the matching
    distribution but still counted in ``total``.
    """
    country_counts: dict[str, int] = {}
    asn_counts: dict[str, int] = {}
    located = 0

    for record in records:
        if record.country:
            country_counts[record.country] = country_counts.get(record.country, 0) + 1

        if record.org_asn:
            label = record.org_asn
            if record.org_name:
                label = f"{label} / {record.org_name}"
            asn_counts[label] = asn_counts.get(label, 0) + 1

        if record.location is not None:
            located += 1

    return SnapshotSummary(
        country_distribution=sorted(
            country_counts.items(), key=lambda item: item[1], reverse=True
        ),
        asn_distribution=sorted(
            asn_counts.items(), key=lambda item: item[1], reverse=True
        ),
        located=located,
        total=len(records),
    )
