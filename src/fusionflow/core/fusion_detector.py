# ──────────────────────────────────────────────────────────────────────
# FusionFlow Core — Collision & Fusion Detector
# © 1998–2026 Miroslav Šotek. All rights reserved.
# Contact: www.anulum.li | protoscience@anulum.li
# ORCID: https://orcid.org/0009-0009-3560-0851
# License: GNU AGPL v3 | Commercial licensing available
# ──────────────────────────────────────────────────────────────────────
"""
Pairwise collision detection with stochastic fusion outcomes.

Cross-sections follow a Gamow-tunnelling weighted log-Gaussian peak model.
The only non-deterministic input is one uniform draw per eligible pair,
taken from an injectable random source so seeded replays are exact.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Optional, Sequence

import numpy as np

from .config_schema import SimulationSettings
from .constants import (
    DD_PRODUCT_MOMENTUM_FRACTION,
    DENSITY_SATURATION_COUNT,
    ELASTIC_RADIUS,
    FLASH_BASE_RADIUS,
    FLASH_OPACITY_DECAY,
    FLASH_RADIUS_GROWTH,
    LOG_GAUSSIAN_WIDTH,
    MAX_FUSION_PROBABILITY,
    PROBABILITY_SCALE,
    PROXIMITY_RADIUS,
    REACTIONS,
    SPECIES_MASS_AMU,
    THERMAL_KEV_PER_UNIT,
    PhysicsMode,
    Reaction,
    ReactionMode,
    Species,
)
from .ensemble import (
    ConfinementKinematics,
    Particle,
    ParticleEnsemble,
    RandomSource,
    clamp_position,
    orbit_through,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FusionEvent:
    """Transient energy/flash marker emitted on a successful fusion roll."""

    id: int
    reaction: Reaction
    x: float
    y: float
    radius: float
    opacity: float
    energy_mev: float


@dataclass
class DetectionResult:
    energy_released_mev: float = 0.0
    events: list[FusionEvent] = field(default_factory=list)
    fusions: int = 0
    eligible_pairs: int = 0
    elastic_collisions: int = 0


def collision_energy(p1: Particle, p2: Particle, temperature: float) -> float:
    """Thermal term linear in temperature plus half the squared relative speed."""
    dvx = p1.vx - p2.vx
    dvy = p1.vy - p2.vy
    return THERMAL_KEV_PER_UNIT * float(temperature) + 0.5 * (dvx * dvx + dvy * dvy)


def classify_reaction(s1: Species, s2: Species, mode: ReactionMode) -> Optional[Reaction]:
    pair = {s1, s2}
    if mode == ReactionMode.DT:
        return Reaction.DT if pair == {Species.D, Species.T} else None
    if mode == ReactionMode.DD_DHE3:
        if s1 == Species.D and s2 == Species.D:
            return Reaction.DD
        if pair == {Species.D, Species.HE3}:
            return Reaction.DHE3
    return None


def cross_section(reaction: Reaction, energy_keV: float) -> float:
    """
    Fusion cross-section (barn) at collision energy ``energy_keV``.

    sigma = sigma_max * G(E) * exp(-ln^2(E / E_peak) / 2)

    The tunnelling weight ``G(E) = exp(-sqrt(E_G / E) + sqrt(E_G / E_peak))``
    applies below the peak only, so ``sigma(E_peak) = sigma_max`` is the
    global maximum.
    """
    E = float(energy_keV)
    if not math.isfinite(E) or E <= 0.0:
        return 0.0
    params = REACTIONS[Reaction(reaction)]
    peak = params.peak_energy_keV
    log_ratio = math.log(E / peak)
    shape = math.exp(-(log_ratio * log_ratio) / LOG_GAUSSIAN_WIDTH)
    if E < peak:
        gamow = params.gamow_energy_keV
        tunnel = math.exp(-math.sqrt(gamow / E) + math.sqrt(gamow / peak))
    else:
        tunnel = 1.0
    return float(params.max_cross_section_barn * tunnel * shape)


def fusion_probability(sigma_barn: float, confinement: float, particle_count: int) -> float:
    """Bounded per-pair fusion probability in ``[0, 0.95]``."""
    sigma = float(sigma_barn)
    n = int(particle_count)
    if not math.isfinite(sigma) or sigma <= 0.0 or n <= 0:
        return 0.0
    conf = float(confinement)
    if not math.isfinite(conf) or conf < 0.0:
        conf = 0.0
    base = -math.expm1(-PROBABILITY_SCALE * sigma)
    boost = 0.5 + 2.0 * conf
    density = min(1.0, n / float(DENSITY_SATURATION_COUNT))
    return float(min(MAX_FUSION_PROBABILITY, base * boost * density))


def age_fusion_events(events: Sequence[FusionEvent]) -> list[FusionEvent]:
    """Grow and fade every event by one tick, dropping fully faded ones."""
    aged: list[FusionEvent] = []
    for ev in events:
        opacity = ev.opacity - FLASH_OPACITY_DECAY
        if opacity <= 0.0:
            continue
        aged.append(replace(ev, radius=ev.radius + FLASH_RADIUS_GROWTH, opacity=opacity))
    return aged


def _elastic_exchange(p1: Particle, p2: Particle, dist: float) -> bool:
    """1-D mass-weighted elastic exchange along the pair normal; closing pairs only."""
    if dist <= 1e-9:
        return False
    nx = (p2.x - p1.x) / dist
    ny = (p2.y - p1.y) / dist
    closing = (p1.vx - p2.vx) * nx + (p1.vy - p2.vy) * ny
    if closing <= 0.0:
        return False
    m1, m2 = p1.mass, p2.mass
    k1 = 2.0 * m2 / (m1 + m2) * closing
    k2 = 2.0 * m1 / (m1 + m2) * closing
    p1.vx -= k1 * nx
    p1.vy -= k1 * ny
    p2.vx += k2 * nx
    p2.vy += k2 * ny
    return True


def _reorbit(p: Particle, confinement: float) -> None:
    """Move an orbital particle onto the orbit through its post-collision heading."""
    x, y = clamp_position(p.x + p.vx, p.y + p.vy)
    p.kinematics = orbit_through(x, y, confinement)


def _candidate_pairs(particles: Sequence[Particle]) -> tuple[np.ndarray, np.ndarray]:
    """Index pairs ``i < j`` closer than the proximity radius, row-major order."""
    pos = np.array([[p.x, p.y] for p in particles], dtype=np.float64)
    diff = pos[:, None, :] - pos[None, :, :]
    d2 = np.einsum("ijk,ijk->ij", diff, diff)
    mask = np.triu(d2 < PROXIMITY_RADIUS * PROXIMITY_RADIUS, k=1)
    return np.argwhere(mask), d2


class FusionDetector:
    """
    Collision & fusion pass over the post-integration ensemble.

    Parameters
    ----------
    random_source : RandomSource
        Any object exposing ``random() -> float`` in ``[0, 1)``
        (``numpy.random.Generator``, ``random.Random`` or a scripted stub).
    """

    def __init__(self, random_source: RandomSource) -> None:
        self.random_source = random_source
        self.next_event_id = 0

    def reset(self) -> None:
        self.next_event_id = 0

    def _emit(self, reaction: Reaction, x: float, y: float) -> FusionEvent:
        params = REACTIONS[reaction]
        event = FusionEvent(
            id=self.next_event_id,
            reaction=reaction,
            x=x,
            y=y,
            radius=FLASH_BASE_RADIUS * params.flash_scale,
            opacity=min(1.0, params.flash_scale),
            energy_mev=params.yield_mev,
        )
        self.next_event_id += 1
        return event

    def detect(
        self,
        ensemble: ParticleEnsemble,
        settings: SimulationSettings,
        effective_confinement: float,
    ) -> DetectionResult:
        """Scan all close pairs once, mutating ``ensemble`` in place."""
        result = DetectionResult()
        particles = ensemble.particles
        n = len(particles)
        if n < 2:
            return result

        pairs, d2 = _candidate_pairs(particles)
        consumed = [False] * n
        products: list[Particle] = []
        temperature = float(settings.temperature)
        mode = ReactionMode(settings.reaction_mode)
        orbital = settings.physics_mode == PhysicsMode.ORBITAL

        for i, j in pairs:
            i = int(i)
            j = int(j)
            # a fused particle takes no further part in this tick
            if consumed[i] or consumed[j]:
                continue
            p1 = particles[i]
            p2 = particles[j]

            fused = False
            reaction = classify_reaction(p1.species, p2.species, mode)
            if reaction is not None:
                result.eligible_pairs += 1
                energy = collision_energy(p1, p2, temperature)
                sigma = cross_section(reaction, energy)
                prob = fusion_probability(sigma, effective_confinement, n)
                if self.random_source.random() < prob:
                    fused = True
                    consumed[i] = consumed[j] = True
                    mx = 0.5 * (p1.x + p2.x)
                    my = 0.5 * (p1.y + p2.y)
                    if reaction == Reaction.DD:
                        products.append(
                            self._he3_product(ensemble, p1, p2, mx, my, settings, effective_confinement)
                        )
                    event = self._emit(reaction, mx, my)
                    result.events.append(event)
                    result.energy_released_mev += event.energy_mev
                    result.fusions += 1

            if not fused and d2[i, j] < ELASTIC_RADIUS * ELASTIC_RADIUS:
                if _elastic_exchange(p1, p2, math.sqrt(float(d2[i, j]))):
                    result.elastic_collisions += 1
                    if orbital:
                        _reorbit(p1, effective_confinement)
                        _reorbit(p2, effective_confinement)

        if result.fusions:
            survivors = [p for k, p in enumerate(particles) if not consumed[k]]
            ensemble.replace_particles(survivors + products)
            logger.debug(
                "Fusion pass: %d fusions, %.2f MeV, %d eligible pairs",
                result.fusions,
                result.energy_released_mev,
                result.eligible_pairs,
            )
        return result

    @staticmethod
    def _he3_product(
        ensemble: ParticleEnsemble,
        p1: Particle,
        p2: Particle,
        x: float,
        y: float,
        settings: SimulationSettings,
        effective_confinement: float,
    ) -> Particle:
        m_he3 = SPECIES_MASS_AMU[Species.HE3]
        px = DD_PRODUCT_MOMENTUM_FRACTION * (p1.mass * p1.vx + p2.mass * p2.vx)
        py = DD_PRODUCT_MOMENTUM_FRACTION * (p1.mass * p1.vy + p2.mass * p2.vy)
        if settings.physics_mode == PhysicsMode.ORBITAL:
            kinematics = orbit_through(x, y, effective_confinement)
        else:
            kinematics = ConfinementKinematics()
        return Particle(
            id=ensemble.allocate_id(),
            species=Species.HE3,
            x=x,
            y=y,
            vx=px / m_he3,
            vy=py / m_he3,
            kinematics=kinematics,
        )
