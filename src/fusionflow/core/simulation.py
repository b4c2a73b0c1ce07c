# ──────────────────────────────────────────────────────────────────────
# FusionFlow Core — Simulation Core Aggregate
# © 1998–2026 Miroslav Šotek. All rights reserved.
# Contact: www.anulum.li | protoscience@anulum.li
# ORCID: https://orcid.org/0009-0009-3560-0851
# License: GNU AGPL v3 | Commercial licensing available
# ──────────────────────────────────────────────────────────────────────
"""
``SimulationCore`` bundles ensemble, settings, counters and active fusion
events, and exposes the single fixed-step ``advance`` entry point.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .config_schema import SimulationSettings
from .constants import WALL_DAMAGE_PER_HIT
from .ensemble import ParticleEnsemble, RandomSource
from .fusion_detector import FusionDetector, FusionEvent, age_fusion_events
from .integrator import effective_confinement_for, integrate_step
from .telemetry import SimulationState


@dataclass(frozen=True)
class TickResult:
    wall_damage: float
    energy_released_mev: float
    fusion_events: tuple[FusionEvent, ...]
    eligible_pairs: int = 0

    @property
    def fusions(self) -> int:
        return len(self.fusion_events)


EMPTY_TICK = TickResult(wall_damage=0.0, energy_released_mev=0.0, fusion_events=())


class SimulationCore:
    """
    Owned aggregate of the physics kernel.

    Parameters
    ----------
    settings : SimulationSettings
        Copied on construction; replace through ``settings`` assignment.
    rng : numpy.random.Generator, optional
        Drives ensemble construction and thermal noise.
    fusion_random_source : RandomSource, optional
        Source of fusion rolls; defaults to ``rng``.
    wall_damage_per_hit : float
        Wall-integrity loss per boundary contact.
    """

    def __init__(
        self,
        settings: SimulationSettings,
        rng: Optional[np.random.Generator] = None,
        fusion_random_source: Optional[RandomSource] = None,
        wall_damage_per_hit: float = WALL_DAMAGE_PER_HIT,
    ) -> None:
        self.settings = settings.model_copy()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.detector = FusionDetector(fusion_random_source if fusion_random_source is not None else self.rng)
        self.wall_damage_per_hit = float(wall_damage_per_hit)
        self.state = SimulationState()
        self.flashes: list[FusionEvent] = []
        self.ensemble = self._build_ensemble()

    def _build_ensemble(self) -> ParticleEnsemble:
        return ParticleEnsemble.build(
            self.settings.initial_particle_count,
            self.settings.reaction_mode,
            self.settings.physics_mode,
            self.rng,
            confinement=self.settings.confinement,
        )

    def reinitialize(
        self,
        rng: Optional[np.random.Generator] = None,
        fusion_random_source: Optional[RandomSource] = None,
    ) -> None:
        """Rebuild the ensemble from current settings and zero every counter."""
        if rng is not None:
            self.rng = rng
        if fusion_random_source is not None:
            self.detector.random_source = fusion_random_source
        elif rng is not None:
            self.detector.random_source = self.rng
        self.detector.reset()
        self.state = SimulationState()
        self.flashes = []
        self.ensemble = self._build_ensemble()

    def effective_confinement(self) -> float:
        return effective_confinement_for(self.settings.confinement, self.state.wall_integrity)

    def advance(
        self,
        settings: Optional[SimulationSettings] = None,
        effective_confinement: Optional[float] = None,
    ) -> TickResult:
        """Integrate one step, then run the collision & fusion pass."""
        settings = self.settings if settings is None else settings
        eff = self.effective_confinement() if effective_confinement is None else float(effective_confinement)

        damage = integrate_step(
            self.ensemble.particles,
            settings,
            eff,
            self.rng,
            wall_damage_per_hit=self.wall_damage_per_hit,
        )
        detection = self.detector.detect(self.ensemble, settings, eff)
        self.flashes = age_fusion_events(self.flashes) + detection.events
        return TickResult(
            wall_damage=damage,
            energy_released_mev=detection.energy_released_mev,
            fusion_events=tuple(detection.events),
            eligible_pairs=detection.eligible_pairs,
        )

    def record(self, result: TickResult) -> None:
        """Fold a tick result into the counters."""
        st = self.state
        st.tick_count += 1
        st.total_energy_mev += result.energy_released_mev
        st.energy_in_window_mev += result.energy_released_mev
        st.fusions_in_window += result.fusions
        if result.wall_damage > 0.0:
            st.wall_integrity = max(st.wall_integrity - result.wall_damage, 0.0)

    def step(self) -> TickResult:
        result = self.advance()
        self.record(result)
        return result
