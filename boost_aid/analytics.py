from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Iterable

COUNTER_NAMES = (
    "titles_filled",
    "names_fixed",
    "names_split_from_email",
    "addresses_shortened",
    "postcodes_corrected",
    "dates_formatted",
)


@dataclass
class BatchAnalytics:
    """Correction counters for one batch.

    ``total_cells_modified`` only moves through :meth:`record`, together
    with the category counter the correction belongs to.
    """

    titles_filled: int = 0
    names_fixed: int = 0
    names_split_from_email: int = 0
    addresses_shortened: int = 0
    postcodes_corrected: int = 0
    dates_formatted: int = 0
    total_cells_modified: int = 0

    def record(self, counter: str | None = None, *, cells: int = 1) -> None:
        if counter is not None:
            if counter not in COUNTER_NAMES:
                raise KeyError(f"Unknown analytics counter: {counter}")
            setattr(self, counter, getattr(self, counter) + 1)
        self.total_cells_modified += cells

    def as_dict(self) -> dict[str, int]:
        return asdict(self)

    def __add__(self, other: BatchAnalytics) -> BatchAnalytics:
        if not isinstance(other, BatchAnalytics):
            return NotImplemented
        return BatchAnalytics(**{f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)})


def merged(partials: Iterable[BatchAnalytics]) -> BatchAnalytics:
    total = BatchAnalytics()
    for partial in partials:
        total = total + partial
    return total
