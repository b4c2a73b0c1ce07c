# ──────────────────────────────────────────────────────────────────────
# FusionFlow Core — Configuration Schema
# © 1998–2026 Miroslav Šotek. All rights reserved.
# Contact: www.anulum.li | protoscience@anulum.li
# ORCID: https://orcid.org/0009-0009-3560-0851
# License: GNU AGPL v3 | Commercial licensing available
# ──────────────────────────────────────────────────────────────────────
"""
Schema validation for simulation settings and engine configuration using Pydantic.

Operator-facing numeric settings are clamped into their documented bounds
instead of being rejected; structural problems (wrong types, unknown modes,
negative cadences) still raise ``ValidationError``.
"""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import (
    ADVISORY_WINDOW,
    CONFINEMENT_BOUNDS,
    ENERGY_THRESHOLD,
    ENERGY_THRESHOLD_BOUNDS,
    INITIAL_CONFINEMENT,
    INITIAL_PARTICLE_COUNT,
    INITIAL_TEMPERATURE,
    PARTICLE_COUNT_BOUNDS,
    TELEMETRY_HISTORY_CAPACITY,
    TELEMETRY_PERIOD_TICKS,
    TEMPERATURE_BOUNDS,
    WALL_DAMAGE_PER_HIT,
    PhysicsMode,
    ReactionMode,
)


def clamp(value: Any, bounds: tuple[float, float], fallback: float) -> float:
    """Clamp ``value`` into ``bounds``; non-finite input falls back to ``fallback``."""
    try:
        out = float(value)
    except (TypeError, ValueError) as exc:
        # pydantic only wraps ValueError into ValidationError
        raise ValueError(f"expected a number, got {value!r}") from exc
    if not math.isfinite(out):
        out = float(fallback)
    lo, hi = bounds
    return float(min(max(out, lo), hi))


class SimulationSettings(BaseModel):
    """Operator settings read by every kernel component each tick."""

    model_config = ConfigDict(validate_assignment=True)

    temperature: float = INITIAL_TEMPERATURE
    confinement: float = INITIAL_CONFINEMENT
    reaction_mode: ReactionMode = ReactionMode.DT
    physics_mode: PhysicsMode = PhysicsMode.TOKAMAK
    initial_particle_count: int = INITIAL_PARTICLE_COUNT
    energy_threshold: float = ENERGY_THRESHOLD

    @field_validator("temperature", mode="before")
    @classmethod
    def clamp_temperature(cls, v: Any) -> float:
        return clamp(v, TEMPERATURE_BOUNDS, INITIAL_TEMPERATURE)

    @field_validator("confinement", mode="before")
    @classmethod
    def clamp_confinement(cls, v: Any) -> float:
        return clamp(v, CONFINEMENT_BOUNDS, INITIAL_CONFINEMENT)

    @field_validator("initial_particle_count", mode="before")
    @classmethod
    def clamp_particle_count(cls, v: Any) -> int:
        bounds = (float(PARTICLE_COUNT_BOUNDS[0]), float(PARTICLE_COUNT_BOUNDS[1]))
        return int(round(clamp(v, bounds, INITIAL_PARTICLE_COUNT)))

    @field_validator("energy_threshold", mode="before")
    @classmethod
    def clamp_energy_threshold(cls, v: Any) -> float:
        return clamp(v, ENERGY_THRESHOLD_BOUNDS, ENERGY_THRESHOLD)


class EngineConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    seed: Optional[int] = None
    telemetry_period_ticks: int = Field(default=TELEMETRY_PERIOD_TICKS, ge=0)
    history_capacity: int = Field(default=TELEMETRY_HISTORY_CAPACITY, ge=1)
    advisory_window: int = Field(default=ADVISORY_WINDOW, ge=1)
    auto_reset_on_fault: bool = True
    wall_damage_per_hit: float = Field(default=WALL_DAMAGE_PER_HIT, ge=0.0)
    settings: SimulationSettings = Field(default_factory=SimulationSettings)


def validate_config(config_dict: dict) -> EngineConfig:
    """Validate a raw configuration dictionary and return a validated EngineConfig."""
    return EngineConfig.model_validate(config_dict)


def load_config(path: Union[str, Path]) -> EngineConfig:
    """Load and validate a JSON engine configuration file."""
    with open(path, "r", encoding="utf-8") as fh:
        raw = json.load(fh)
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration root must be a JSON object: {path}")
    return validate_config(raw)
