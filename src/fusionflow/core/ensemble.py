# ──────────────────────────────────────────────────────────────────────
# FusionFlow Core — Particle Ensemble
# © 1998–2026 Miroslav Šotek. All rights reserved.
# Contact: www.anulum.li | protoscience@anulum.li
# ORCID: https://orcid.org/0009-0009-3560-0851
# License: GNU AGPL v3 | Commercial licensing available
# ──────────────────────────────────────────────────────────────────────
"""
Charged-particle ensemble with per-mode kinematic state.

Each particle carries a ``kinematics`` variant selected by the active force
model: ``ConfinementKinematics`` for the tokamak model (no extra state) or
``OrbitalKinematics`` holding the Keplerian orbit parameters.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Iterable, Iterator, Protocol, Union

from .constants import (
    MIN_ORBIT_RADIUS,
    ORBITAL_ASPECT,
    ORBITAL_BASE_OMEGA,
    ORBITAL_REFERENCE_RADIUS,
    PARTICLE_RADIUS,
    SIMULATION_HEIGHT,
    SIMULATION_WIDTH,
    SPECIES_MASS_AMU,
    PhysicsMode,
    ReactionMode,
    Species,
)


class RandomSource(Protocol):
    def random(self) -> float: ...


@dataclass(frozen=True)
class ConfinementKinematics:
    """Tokamak force model marker; motion lives entirely in x/y/vx/vy."""


@dataclass(frozen=True)
class OrbitalKinematics:
    radius: float
    angle: float
    angular_speed: float
    eccentricity: float
    phase: float


ParticleKinematics = Union[ConfinementKinematics, OrbitalKinematics]


@dataclass
class Particle:
    id: int
    species: Species
    x: float
    y: float
    vx: float
    vy: float
    kinematics: ParticleKinematics = field(default_factory=ConfinementKinematics)

    @property
    def mass(self) -> float:
        return SPECIES_MASS_AMU[self.species]

    def momentum(self) -> tuple[float, float]:
        return self.mass * self.vx, self.mass * self.vy

    def copy(self) -> "Particle":
        return replace(self)


def center() -> tuple[float, float]:
    return SIMULATION_WIDTH / 2.0, SIMULATION_HEIGHT / 2.0


def clamp_position(x: float, y: float) -> tuple[float, float]:
    x = min(max(x, PARTICLE_RADIUS), SIMULATION_WIDTH - PARTICLE_RADIUS)
    y = min(max(y, PARTICLE_RADIUS), SIMULATION_HEIGHT - PARTICLE_RADIUS)
    return x, y


def kepler_angular_speed(radius: float, confinement: float) -> float:
    """Angular rate falling off with the 1.5 power of the radius ratio."""
    r = max(float(radius), MIN_ORBIT_RADIUS)
    return ORBITAL_BASE_OMEGA * float(confinement) * (ORBITAL_REFERENCE_RADIUS / r) ** 1.5


def orbital_position(orbit: OrbitalKinematics) -> tuple[float, float]:
    cx, cy = center()
    r_eff = orbit.radius * (1.0 + orbit.eccentricity * math.cos(orbit.angle + orbit.phase))
    return (
        cx + r_eff * math.cos(orbit.angle),
        cy + r_eff * math.sin(orbit.angle) * ORBITAL_ASPECT,
    )


def orbit_through(x: float, y: float, confinement: float) -> OrbitalKinematics:
    """Circular orbit passing through ``(x, y)``; used for fusion products."""
    cx, cy = center()
    dx = x - cx
    dy = (y - cy) / ORBITAL_ASPECT
    radius = max(math.hypot(dx, dy), MIN_ORBIT_RADIUS)
    return OrbitalKinematics(
        radius=radius,
        angle=math.atan2(dy, dx),
        angular_speed=kepler_angular_speed(radius, confinement),
        eccentricity=0.0,
        phase=0.0,
    )


class ParticleEnsemble:
    """Ordered particle list with a monotonic id allocator."""

    def __init__(self, particles: Iterable[Particle] = (), next_id: int | None = None) -> None:
        self.particles: list[Particle] = list(particles)
        if next_id is None:
            next_id = max((p.id for p in self.particles), default=-1) + 1
        self.next_id = int(next_id)

    def __len__(self) -> int:
        return len(self.particles)

    def __iter__(self) -> Iterator[Particle]:
        return iter(self.particles)

    def __getitem__(self, index: int) -> Particle:
        return self.particles[index]

    def allocate_id(self) -> int:
        pid = self.next_id
        self.next_id += 1
        return pid

    def spawn(
        self,
        species: Species,
        x: float,
        y: float,
        vx: float,
        vy: float,
        kinematics: ParticleKinematics | None = None,
    ) -> Particle:
        particle = Particle(
            id=self.allocate_id(),
            species=species,
            x=float(x),
            y=float(y),
            vx=float(vx),
            vy=float(vy),
            kinematics=kinematics if kinematics is not None else ConfinementKinematics(),
        )
        self.particles.append(particle)
        return particle

    def replace_particles(self, particles: list[Particle]) -> None:
        self.particles = particles

    def species_counts(self) -> dict[str, int]:
        counts = {s.value: 0 for s in Species}
        for p in self.particles:
            counts[p.species.value] += 1
        return counts

    def copy(self) -> "ParticleEnsemble":
        return ParticleEnsemble([p.copy() for p in self.particles], next_id=self.next_id)

    @classmethod
    def build(
        cls,
        count: int,
        reaction_mode: ReactionMode,
        physics_mode: PhysicsMode,
        rng: RandomSource,
        confinement: float = 0.2,
    ) -> "ParticleEnsemble":
        """Create ``count`` particles from ``rng``.

        DT mode draws a 50/50 D/T mixture; DD_DHe3 mode starts pure D.
        Tokamak particles start in the central box with random velocity,
        orbital particles on random ellipses around the center.
        """
        ensemble = cls()
        for _ in range(max(int(count), 0)):
            if reaction_mode == ReactionMode.DD_DHE3:
                species = Species.D
            else:
                species = Species.D if rng.random() > 0.5 else Species.T

            if physics_mode == PhysicsMode.ORBITAL:
                radius = 50.0 + rng.random() * 200.0
                orbit = OrbitalKinematics(
                    radius=radius,
                    angle=rng.random() * 2.0 * math.pi,
                    angular_speed=kepler_angular_speed(radius, confinement),
                    eccentricity=rng.random() * 0.3,
                    phase=rng.random() * 2.0 * math.pi,
                )
                x, y = clamp_position(*orbital_position(orbit))
                ensemble.spawn(species, x, y, 0.0, 0.0, orbit)
            else:
                x = 200.0 + rng.random() * 400.0
                y = 150.0 + rng.random() * 300.0
                vx = (rng.random() - 0.5) * 6.0
                vy = (rng.random() - 0.5) * 6.0
                ensemble.spawn(species, x, y, vx, vy)
        return ensemble
