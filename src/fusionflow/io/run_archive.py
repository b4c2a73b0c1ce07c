# ──────────────────────────────────────────────────────────────────────
# FusionFlow Core — Episode Run Archive
# © 1998–2026 Miroslav Šotek. All rights reserved.
# Contact: www.anulum.li | protoscience@anulum.li
# ORCID: https://orcid.org/0009-0009-3560-0851
# License: GNU AGPL v3 | Commercial licensing available
# ──────────────────────────────────────────────────────────────────────
"""Episode summaries and the persistence adapters that store them."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal, Optional, Protocol, Union

from pydantic import BaseModel, Field, ValidationError

from fusionflow.core.constants import (
    HIGH_YIELD_ENERGY_MEV,
    STABLE_ENERGY_MEV,
    WALL_INTEGRITY_FULL,
    PhysicsMode,
    ReactionMode,
)

logger = logging.getLogger(__name__)

Outcome = Literal["High Yield", "Stable", "Suboptimal"]
Termination = Literal["stopped", "reset", "wall_failure"]


def _utc_now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


class EpisodeSummary(BaseModel):
    """Record persisted once per finished episode."""

    created_at: str = Field(default_factory=_utc_now)
    duration_seconds: float = Field(ge=0.0)
    total_energy_mev: float = Field(ge=0.0)
    peak_fusion_rate: int = Field(ge=0)
    outcome: Outcome
    termination: Termination
    initial_particle_count: int
    initial_temperature: float
    initial_confinement: float
    final_energy_threshold: float
    reaction_mode: ReactionMode
    physics_mode: PhysicsMode
    final_q_factor: float = 0.0
    final_lyapunov_exponent: float = 0.0
    final_fractal_dimension: float = 1.0
    final_magnetic_safety_factor: float = 0.0
    final_wall_integrity: float = WALL_INTEGRITY_FULL
    final_reward: float = 0.0
    score: float = 0.0


def classify_outcome(total_energy_mev: float) -> Outcome:
    """Map accumulated energy onto the three outcome labels."""
    energy = float(total_energy_mev)
    if energy > HIGH_YIELD_ENERGY_MEV:
        return "High Yield"
    if energy > STABLE_ENERGY_MEV:
        return "Stable"
    return "Suboptimal"


def composite_score(total_energy_mev: float, wall_integrity: float, peak_fusion_rate: int) -> float:
    """Energy weighted by surviving wall integrity, plus a peak-rate bonus."""
    wall = min(max(float(wall_integrity), 0.0), WALL_INTEGRITY_FULL) / WALL_INTEGRITY_FULL
    return float(max(float(total_energy_mev), 0.0) * (0.5 + 0.5 * wall) + 10.0 * max(int(peak_fusion_rate), 0))


def rank_runs(runs: list[EpisodeSummary], limit: int) -> list[EpisodeSummary]:
    ordered = sorted(runs, key=lambda s: s.score, reverse=True)
    return ordered[: max(int(limit), 0)]


class RunArchive(Protocol):
    def save(self, summary: EpisodeSummary) -> None: ...

    def top_runs(self, limit: int = 5) -> list[EpisodeSummary]: ...


class InMemoryRunArchive:
    """
    Process-local archive.

    With ``maxlen`` set, the lowest-scoring run is evicted once the archive
    is full, so ``top_runs`` stays exact for any ``limit <= maxlen``.
    """

    def __init__(self, maxlen: Optional[int] = None) -> None:
        if maxlen is not None and maxlen < 1:
            raise ValueError(f"maxlen must be positive, got {maxlen}")
        self.maxlen = maxlen
        self.runs: list[EpisodeSummary] = []

    def save(self, summary: EpisodeSummary) -> None:
        self.runs.append(summary.model_copy())
        if self.maxlen is not None and len(self.runs) > self.maxlen:
            worst = min(range(len(self.runs)), key=lambda k: self.runs[k].score)
            del self.runs[worst]

    def top_runs(self, limit: int = 5) -> list[EpisodeSummary]:
        return rank_runs(self.runs, limit)


class JsonlRunArchive:
    """
    Append-only JSON-lines archive.

    Parameters
    ----------
    path : str or Path
        Target file; parent directories are created on first write.

    Malformed lines are skipped with a warning when reading. Write failures
    propagate as ``OSError`` to the caller.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def save(self, summary: EpisodeSummary) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as fh:
            fh.write(summary.model_dump_json() + "\n")
        logger.debug("Archived episode summary to %s (score=%.2f)", self.path, summary.score)

    def load(self) -> list[EpisodeSummary]:
        if not self.path.exists():
            return []
        runs: list[EpisodeSummary] = []
        with open(self.path, "r", encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    runs.append(EpisodeSummary.model_validate_json(line))
                except ValidationError as exc:
                    logger.warning(
                        "Skipping malformed archive line %d in %s: %s",
                        lineno,
                        self.path,
                        exc.errors()[0].get("msg", "invalid record") if exc.errors() else "invalid record",
                    )
        return runs

    def top_runs(self, limit: int = 5) -> list[EpisodeSummary]:
        return rank_runs(self.load(), limit)
