"""Run Summary: per-sample counts aggregated after all writers have closed."""

import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from .constants import Anomaly, SampleId


@dataclass(frozen=True)
class RunSummary:
    total_records: int
    per_sample_counts: Mapping[str, int]
    unmatched_count: int
    anomalies: Mapping[str, int] = field(default_factory=dict)
    elapsed: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, 'per_sample_counts', MappingProxyType(dict(self.per_sample_counts)))
        anomalies = {Anomaly.TOO_SHORT: 0, Anomaly.ERROR: 0, Anomaly.DROPPED: 0}
        anomalies.update(self.anomalies)
        object.__setattr__(self, 'anomalies', MappingProxyType(anomalies))

    @classmethod
    def from_counts(cls, total_records: int, counts: Dict[str, int], anomalies: Dict[str, int],
                    elapsed: float = 0.0) -> 'RunSummary':
        """
        Build a summary from writer counts keyed by sample id, 'unmatched' included.

        Records skipped because classification faulted are never written, so
        they are added to the unmatched count here.
        """
        per_sample = {k: v for k, v in counts.items() if k != SampleId.UNMATCHED}
        unmatched_count = counts.get(SampleId.UNMATCHED, 0) + anomalies.get(Anomaly.ERROR, 0)
        return cls(total_records, per_sample, unmatched_count, anomalies, elapsed)

    @property
    def matched_count(self) -> int:
        return sum(self.per_sample_counts.values())

    @property
    def dropped_count(self) -> int:
        """Records read but discarded after a fatal processing failure."""
        return self.anomalies[Anomaly.DROPPED]

    @property
    def match_rate(self) -> float:
        if self.total_records == 0:
            return 0.0
        return self.matched_count / self.total_records

    def is_conserved(self) -> bool:
        return self.total_records == self.unmatched_count + self.matched_count + self.dropped_count

    def to_dict(self) -> dict:
        return {
            'total_records': self.total_records,
            'matched': self.matched_count,
            'unmatched': self.unmatched_count,
            'dropped': self.dropped_count,
            'per_sample_counts': dict(self.per_sample_counts),
            'anomalies': dict(self.anomalies),
            'elapsed_seconds': round(self.elapsed, 3),
        }

    def write_json(self, filename: str):
        with open(filename, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)
            f.write("\n")

    def format_report(self, output_dir: Optional[str] = None) -> str:
        lines = ["", "==================== Demultiplexing summary ===================="]
        lines.append(f"Elapsed time: {self.elapsed:.2f} seconds")
        lines.append(f"Total reads processed: {self.total_records:,}")
        if self.total_records > 0:
            unmatched_pct = self.unmatched_count * 100.0 / self.total_records
            lines.append(f"  - Matched reads:   {self.matched_count:>12,} ({self.match_rate * 100.0:.2f}%)")
            lines.append(f"  - Unmatched reads: {self.unmatched_count:>12,} ({unmatched_pct:.2f}%)")
            if self.dropped_count:
                dropped_pct = self.dropped_count * 100.0 / self.total_records
                lines.append(f"  - Dropped reads:   {self.dropped_count:>12,} ({dropped_pct:.2f}%)")
            lines.append("-" * 64)
            for sample_id, count in sorted(self.per_sample_counts.items(), key=lambda kv: -kv[1]):
                pct = count * 100.0 / self.total_records
                lines.append(f"  - Sample {sample_id}: {count:>12,} reads ({pct:.2f}%)")
        lines.append("=" * 64)
        if output_dir is not None:
            lines.append(f"Results written to: {output_dir}")
        return "\n".join(lines)
