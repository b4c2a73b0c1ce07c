# ──────────────────────────────────────────────────────────────────────
# FusionFlow Core — Core Package Init
# © 1998–2026 Miroslav Šotek. All rights reserved.
# Contact: www.anulum.li | protoscience@anulum.li
# ORCID: https://orcid.org/0009-0009-3560-0851
# License: GNU AGPL v3 | Commercial licensing available
# ──────────────────────────────────────────────────────────────────────
from .constants import PhysicsMode, Reaction, ReactionMode, Species, REACTIONS
from .config_schema import EngineConfig, SimulationSettings, load_config, validate_config
from .ensemble import (
    ConfinementKinematics,
    OrbitalKinematics,
    Particle,
    ParticleEnsemble,
)
from .integrator import effective_confinement_for, integrate_step
from .fusion_detector import (
    DetectionResult,
    FusionDetector,
    FusionEvent,
    age_fusion_events,
    classify_reaction,
    collision_energy,
    cross_section,
    fusion_probability,
)
from .telemetry import (
    SimulationState,
    TelemetryAggregator,
    TelemetrySnapshot,
    fractal_dimension,
    lyapunov_exponent,
    magnetic_safety_factor,
    q_factor,
    reward_proxy,
)
from .simulation import SimulationCore, TickResult

__all__ = [
    "age_fusion_events",
    "classify_reaction",
    "collision_energy",
    "ConfinementKinematics",
    "cross_section",
    "DetectionResult",
    "effective_confinement_for",
    "EngineConfig",
    "fractal_dimension",
    "FusionDetector",
    "FusionEvent",
    "fusion_probability",
    "integrate_step",
    "load_config",
    "lyapunov_exponent",
    "magnetic_safety_factor",
    "OrbitalKinematics",
    "Particle",
    "ParticleEnsemble",
    "PhysicsMode",
    "q_factor",
    "Reaction",
    "REACTIONS",
    "ReactionMode",
    "reward_proxy",
    "SimulationCore",
    "SimulationSettings",
    "SimulationState",
    "Species",
    "TelemetryAggregator",
    "TelemetrySnapshot",
    "TickResult",
    "validate_config",
]
