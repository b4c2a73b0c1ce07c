# ──────────────────────────────────────────────────────────────────────
# FusionFlow Core — Motion Integrator
# © 1998–2026 Miroslav Šotek. All rights reserved.
# Contact: www.anulum.li | protoscience@anulum.li
# ORCID: https://orcid.org/0009-0009-3560-0851
# License: GNU AGPL v3 | Commercial licensing available
# ──────────────────────────────────────────────────────────────────────
"""
One-step particle integrator for the tokamak and orbital force models.

Both models return the wall damage accumulated during the step and leave
every particle inside ``[R, W - R] x [R, H - R]``.
"""

from __future__ import annotations

import math
from typing import Sequence

from .config_schema import SimulationSettings
from .constants import (
    GYRATION_STRENGTH,
    LORENTZ_STRENGTH,
    MIN_EFFECTIVE_CONFINEMENT,
    MIN_FORCE_DISTANCE,
    MIN_ORBIT_RADIUS,
    ORBITAL_DECAY,
    ORBITAL_NOISE_SCALE,
    PARTICLE_RADIUS,
    SIMULATION_HEIGHT,
    SIMULATION_WIDTH,
    THERMAL_NOISE_SCALE,
    VELOCITY_DAMPING,
    WALL_CONFINEMENT_PENALTY,
    WALL_DAMAGE_PER_HIT,
    WALL_INTEGRITY_FULL,
    WALL_RESTITUTION,
    PhysicsMode,
)
from .ensemble import (
    ConfinementKinematics,
    OrbitalKinematics,
    Particle,
    RandomSource,
    center,
    clamp_position,
    kepler_angular_speed,
    orbit_through,
    orbital_position,
)

_X_MIN = PARTICLE_RADIUS
_X_MAX = SIMULATION_WIDTH - PARTICLE_RADIUS
_Y_MIN = PARTICLE_RADIUS
_Y_MAX = SIMULATION_HEIGHT - PARTICLE_RADIUS


def effective_confinement_for(confinement: float, wall_integrity: float = WALL_INTEGRITY_FULL) -> float:
    """Confinement reduced by wall degradation, floored at 0.1."""
    lost = min(max(WALL_INTEGRITY_FULL - float(wall_integrity), 0.0), WALL_INTEGRITY_FULL)
    penalty = WALL_CONFINEMENT_PENALTY * lost / WALL_INTEGRITY_FULL
    value = float(confinement) - penalty
    if not math.isfinite(value):
        return MIN_EFFECTIVE_CONFINEMENT
    return max(value, MIN_EFFECTIVE_CONFINEMENT)


def _finite_or_zero(v: float) -> float:
    return v if math.isfinite(v) else 0.0


def _step_tokamak(
    p: Particle,
    temperature: float,
    confinement: float,
    rng: RandomSource,
    damage_per_hit: float,
) -> float:
    cx, cy = center()
    dx = cx - p.x
    dy = cy - p.y
    dist = math.hypot(dx, dy)

    # Lorentz-like radial pull plus perpendicular gyration
    if dist > MIN_FORCE_DISTANCE:
        nx, ny = dx / dist, dy / dist
        radial = confinement * LORENTZ_STRENGTH
        gyro = confinement * GYRATION_STRENGTH
        p.vx += nx * radial - ny * gyro
        p.vy += ny * radial + nx * gyro

    p.vx += (rng.random() - 0.5) * temperature * THERMAL_NOISE_SCALE
    p.vy += (rng.random() - 0.5) * temperature * THERMAL_NOISE_SCALE

    p.vx = _finite_or_zero(p.vx * VELOCITY_DAMPING)
    p.vy = _finite_or_zero(p.vy * VELOCITY_DAMPING)

    x = p.x + p.vx
    y = p.y + p.vy

    damage = 0.0
    if x < _X_MIN:
        p.vx = abs(p.vx) * WALL_RESTITUTION
        damage += damage_per_hit
    elif x > _X_MAX:
        p.vx = -abs(p.vx) * WALL_RESTITUTION
        damage += damage_per_hit
    if y < _Y_MIN:
        p.vy = abs(p.vy) * WALL_RESTITUTION
        damage += damage_per_hit
    elif y > _Y_MAX:
        p.vy = -abs(p.vy) * WALL_RESTITUTION
        damage += damage_per_hit

    p.x, p.y = clamp_position(x, y)
    if not isinstance(p.kinematics, ConfinementKinematics):
        p.kinematics = ConfinementKinematics()
    return damage


def _step_orbital(
    p: Particle,
    temperature: float,
    confinement: float,
    rng: RandomSource,
    damage_per_hit: float,
) -> float:
    orbit = p.kinematics
    if not isinstance(orbit, OrbitalKinematics):
        orbit = orbit_through(p.x, p.y, confinement)

    omega = kepler_angular_speed(orbit.radius, confinement)
    jitter = (rng.random() - 0.5) * temperature * ORBITAL_NOISE_SCALE
    angle = math.fmod(orbit.angle + omega + _finite_or_zero(jitter), 2.0 * math.pi)
    orbit = OrbitalKinematics(
        radius=orbit.radius,
        angle=angle,
        angular_speed=omega,
        eccentricity=orbit.eccentricity,
        phase=orbit.phase,
    )
    x, y = orbital_position(orbit)

    damage = 0.0
    if x < _X_MIN or x > _X_MAX or y < _Y_MIN or y > _Y_MAX:
        orbit = OrbitalKinematics(
            radius=max(orbit.radius * ORBITAL_DECAY, MIN_ORBIT_RADIUS),
            angle=orbit.angle,
            angular_speed=orbit.angular_speed,
            eccentricity=orbit.eccentricity,
            phase=math.fmod(orbit.phase + math.pi, 2.0 * math.pi),
        )
        damage += damage_per_hit

    x, y = clamp_position(x, y)
    p.vx = x - p.x
    p.vy = y - p.y
    p.x, p.y = x, y
    p.kinematics = orbit
    return damage


def integrate_step(
    particles: Sequence[Particle],
    settings: SimulationSettings,
    effective_confinement: float,
    rng: RandomSource,
    wall_damage_per_hit: float = WALL_DAMAGE_PER_HIT,
) -> float:
    """
    Advance every particle by one fixed step under the active force model.

    Parameters
    ----------
    particles : sequence of Particle
        Mutated in place.
    settings : SimulationSettings
        Supplies temperature and physics mode.
    effective_confinement : float
        Confinement after the wall penalty; values below 0.1 are raised to 0.1.
    rng : RandomSource
        Source of thermal noise.
    wall_damage_per_hit : float
        Wall-integrity loss per boundary contact.

    Returns
    -------
    float
        Wall damage accumulated during the step.
    """
    temperature = float(settings.temperature)
    if not math.isfinite(temperature) or temperature < 0.0:
        temperature = 0.0
    confinement = max(float(effective_confinement), MIN_EFFECTIVE_CONFINEMENT)
    if not math.isfinite(confinement):
        confinement = MIN_EFFECTIVE_CONFINEMENT
    step = _step_orbital if settings.physics_mode == PhysicsMode.ORBITAL else _step_tokamak

    damage = 0.0
    for p in particles:
        damage += step(p, temperature, confinement, rng, float(wall_damage_per_hit))
    return damage
