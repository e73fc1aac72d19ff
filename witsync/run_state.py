"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of witsync, licensed under the MIT License.
See LICENSE file for details.
"""

"""Counters and the rolling time estimate of one migration run."""

from dataclasses import dataclass


def format_duration(seconds: float) -> str:
    """Format seconds as ``"H hours M minutes S.mmm seconds"``."""
    seconds = max(seconds, 0.0)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{int(hours)} hours {int(minutes)} minutes {secs:.3f} seconds"


@dataclass
class RunState:
    """
    Progress of one migration kind.

    ``attempted`` counts every entity looked at, including nested ones, and
    each of them ends up in exactly one of migrated, skipped or failed.
    ``total`` and ``processed`` count top-level entities and drive the ETA.
    """

    name: str
    total: int = 0
    processed: int = 0
    attempted: int = 0
    migrated: int = 0
    skipped: int = 0
    failed: int = 0
    elapsed: float = 0.0
    scanned: int = 0

    def record(self, duration: float) -> None:
        """Account for one finished top-level entity."""
        self.processed += 1
        self.elapsed += max(duration, 0.0)

    @property
    def average(self) -> float:
        if self.processed == 0:
            return 0.0
        return self.elapsed / self.processed

    @property
    def remaining(self) -> int:
        return max(self.total - self.processed, 0)

    @property
    def eta(self) -> float:
        return self.average * self.remaining

    def progress_line(self) -> str:
        return (
            f"Average time of {self.average:.3f} seconds per item and "
            f"{format_duration(self.eta)} estimated to completion"
        )

    def summary(self) -> dict[str, int | float | str]:
        return {
            "name": self.name,
            "attempted": self.attempted,
            "migrated": self.migrated,
            "skipped": self.skipped,
            "failed": self.failed,
            "scanned": self.scanned,
            "elapsed": round(self.elapsed, 3),
            "eta": round(self.eta, 3),
        }
