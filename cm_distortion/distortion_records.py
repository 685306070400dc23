"""
Distortion Records and Sinks
Per-pair output records, plus the narrow interfaces through which the
matcher hands records and diagnostics to storage / plotting backends.
"""

from dataclasses import astuple, dataclass, fields
from typing import Dict, List, Protocol, Sequence, Tuple

import numpy as np
from astropy.table import Table


@dataclass(frozen=True)
class DistortionRecord:
    truth_phi: float
    truth_r: float
    truth_z: float
    obs_phi: float
    obs_r: float
    obs_z: float
    n_clusters: int

    def residuals(self) -> Tuple[float, float, float]:
        """Observed minus truth in (phi, r, z)."""
        return (
            self.obs_phi - self.truth_phi,
            self.obs_r - self.truth_r,
            self.obs_z - self.truth_z,
        )


RECORD_COLUMNS = tuple(f.name for f in fields(DistortionRecord))


def records_to_arrays(records: Sequence[DistortionRecord]) -> Dict[str, np.ndarray]:
    if not records:
        return {name: np.zeros(0) for name in RECORD_COLUMNS}
    data = np.array([astuple(r) for r in records], dtype=float)
    return {name: data[:, i] for i, name in enumerate(RECORD_COLUMNS)}


class RecordSink(Protocol):
    def add(self, key: int, record: DistortionRecord) -> None:
        ...


class DiagnosticSink(Protocol):
    def truth(self, truth_set) -> None:
        ...

    def observed(self, x: np.ndarray, y: np.ndarray) -> None:
        ...

    def matched(self, records: Sequence[DistortionRecord]) -> None:
        ...

    def finalize(self) -> None:
        ...


class TableRecordSink:
    """Keeps the records of a pass keyed by truth index."""

    def __init__(self):
        self.records: Dict[int, DistortionRecord] = {}

    def add(self, key: int, record: DistortionRecord) -> None:
        self.records[key] = record

    def clear(self) -> None:
        self.records.clear()

    def __len__(self) -> int:
        return len(self.records)

    def to_table(self) -> Table:
        keys: List[int] = sorted(self.records)
        arrays = records_to_arrays([self.records[k] for k in keys])
        tab = Table()
        tab["key"] = np.array(keys, dtype=np.int64)
        for name in RECORD_COLUMNS:
            tab[name] = arrays[name]
        tab["n_clusters"] = tab["n_clusters"].astype(np.uint32)
        return tab
