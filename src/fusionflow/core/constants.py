# ──────────────────────────────────────────────────────────────────────
# FusionFlow Core — Physics Constants Table
# © 1998–2026 Miroslav Šotek. All rights reserved.
# Contact: www.anulum.li | protoscience@anulum.li
# ORCID: https://orcid.org/0009-0009-3560-0851
# License: GNU AGPL v3 | Commercial licensing available
# ──────────────────────────────────────────────────────────────────────
"""
Static simulation geometry, parameter bounds and reaction parameters.

Energies are expressed on the simulator's "keV-equivalent" collision
scale. The DT channel keeps its physical peak (64 keV); the DD and D-He3
peaks are compressed into the reachable 10-300 temperature range.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum


class Species(str, Enum):
    D = "D"
    T = "T"
    HE3 = "He3"


class ReactionMode(str, Enum):
    DT = "DT"
    DD_DHE3 = "DD_DHe3"


class PhysicsMode(str, Enum):
    TOKAMAK = "tokamak"
    ORBITAL = "orbital"


class Reaction(str, Enum):
    DT = "DT"
    DD = "DD"
    DHE3 = "DHe3"


# Geometry / frame timing
SIMULATION_WIDTH = 800.0
SIMULATION_HEIGHT = 600.0
FPS = 60
TICK_SECONDS = 1.0 / FPS
PARTICLE_RADIUS = 5.0

# Defaults
INITIAL_PARTICLE_COUNT = 60
INITIAL_TEMPERATURE = 100.0
INITIAL_CONFINEMENT = 0.2
ENERGY_THRESHOLD = 10.0

# Parameter bounds (min, max)
TEMPERATURE_BOUNDS = (10.0, 300.0)
CONFINEMENT_BOUNDS = (0.1, 1.5)
PARTICLE_COUNT_BOUNDS = (20, 150)
ENERGY_THRESHOLD_BOUNDS = (0.0, 100.0)

MIN_EFFECTIVE_CONFINEMENT = 0.1

PHI = (1.0 + math.sqrt(5.0)) / 2.0

SPECIES_MASS_AMU: dict[Species, float] = {
    Species.D: 2.0,
    Species.T: 3.0,
    Species.HE3: 3.0,
}


@dataclass(frozen=True)
class ReactionParameters:
    """Cross-section and yield parameters of one fusion channel."""

    reaction: Reaction
    peak_energy_keV: float
    max_cross_section_barn: float
    gamow_energy_keV: float
    yield_mev: float
    lawson_triple_product: float  # keV s m^-3
    flash_scale: float


DT_PEAK_ENERGY_KEV = 64.0
DT_CROSS_SECTION_MAX = 5.0
DT_FUSION_ENERGY_MEV = 17.6
DD_FUSION_ENERGY_MEV = 3.27
DHE3_FUSION_ENERGY_MEV = 18.3

REACTIONS: dict[Reaction, ReactionParameters] = {
    Reaction.DT: ReactionParameters(
        reaction=Reaction.DT,
        peak_energy_keV=DT_PEAK_ENERGY_KEV,
        max_cross_section_barn=DT_CROSS_SECTION_MAX,
        gamow_energy_keV=1182.0,
        yield_mev=DT_FUSION_ENERGY_MEV,
        lawson_triple_product=3.0e21,
        flash_scale=1.0,
    ),
    # He3 + n branch; the p + T branch is not tracked.
    Reaction.DD: ReactionParameters(
        reaction=Reaction.DD,
        peak_energy_keV=200.0,
        max_cross_section_barn=0.11,
        gamow_energy_keV=986.0,
        yield_mev=DD_FUSION_ENERGY_MEV,
        lawson_triple_product=1.0e23,
        flash_scale=0.6,
    ),
    Reaction.DHE3: ReactionParameters(
        reaction=Reaction.DHE3,
        peak_energy_keV=250.0,
        max_cross_section_barn=0.9,
        gamow_energy_keV=4726.0,
        yield_mev=DHE3_FUSION_ENERGY_MEV,
        lawson_triple_product=4.0e22,
        flash_scale=1.2,
    ),
}

# Motion integrator
THERMAL_NOISE_SCALE = 0.02
LORENTZ_STRENGTH = 0.5
GYRATION_STRENGTH = 0.15
VELOCITY_DAMPING = 0.98
WALL_RESTITUTION = 0.8
WALL_DAMAGE_PER_HIT = 0.02
WALL_CONFINEMENT_PENALTY = 0.3
MIN_FORCE_DISTANCE = 1.0

ORBITAL_BASE_OMEGA = 0.02
ORBITAL_REFERENCE_RADIUS = 100.0
ORBITAL_NOISE_SCALE = 0.0005
ORBITAL_ASPECT = 0.75
ORBITAL_DECAY = 0.95
MIN_ORBIT_RADIUS = 10.0

# Collision & fusion detector
PROXIMITY_RADIUS = 2.0 * PARTICLE_RADIUS
ELASTIC_RADIUS = 0.75 * PROXIMITY_RADIUS
THERMAL_KEV_PER_UNIT = 1.0
LOG_GAUSSIAN_WIDTH = 2.0
PROBABILITY_SCALE = 0.1
DENSITY_SATURATION_COUNT = 100
MAX_FUSION_PROBABILITY = 0.95
DD_PRODUCT_MOMENTUM_FRACTION = 0.4
FLASH_BASE_RADIUS = 2.0
FLASH_RADIUS_GROWTH = 1.5
FLASH_OPACITY_DECAY = 0.05

# Telemetry
TELEMETRY_PERIOD_TICKS = 12  # 200 ms at 60 FPS
TELEMETRY_HISTORY_CAPACITY = 20
ADVISORY_WINDOW = 10
ENERGY_IN_COEFFICIENT = 0.1  # MeV/s per (temperature x confinement x particle)
SAFETY_FACTOR_BASE = 1.0
SAFETY_FACTOR_GAIN = 3.0
SAFETY_REFERENCE_TEMPERATURE = 100.0

# Episode outcome thresholds (MeV)
HIGH_YIELD_ENERGY_MEV = 7500.0
STABLE_ENERGY_MEV = 2500.0
WALL_INTEGRITY_FULL = 100.0
