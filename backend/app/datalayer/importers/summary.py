from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass
class ImportSummary:
    source: str
    upserted: Dict[str, int] = field(default_factory=dict)
    skipped: Dict[str, int] = field(default_factory=dict)
    db_counts: Dict[str, int] = field(default_factory=dict)

    def count_upsert(self, key: str, n: int = 1):
        self.upserted[key] = self.upserted.get(key, 0) + n

    def count_skip(self, key: str, n: int = 1):
        self.skipped[key] = self.skipped.get(key, 0) + n

    @property
    def total_skipped(self) -> int:
        return sum(self.skipped.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "upserted": dict(self.upserted),
            "skipped": dict(self.skipped),
            "db_counts": dict(self.db_counts)
        }
