# ──────────────────────────────────────────────────────────────────────
# FusionFlow Core — Telemetry Aggregator
# © 1998–2026 Miroslav Šotek. All rights reserved.
# Contact: www.anulum.li | protoscience@anulum.li
# ORCID: https://orcid.org/0009-0009-3560-0851
# License: GNU AGPL v3 | Commercial licensing available
# ──────────────────────────────────────────────────────────────────────
"""
Rolling-window telemetry derived from simulation counters.

The magnetic-safety-factor, fractal-dimension and Lyapunov values are
illustrative proxies with the expected monotonic shape, not validated
plasma physics.
"""

from __future__ import annotations

import math
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Deque

from .config_schema import SimulationSettings
from .constants import (
    ENERGY_IN_COEFFICIENT,
    PHI,
    SAFETY_FACTOR_BASE,
    SAFETY_FACTOR_GAIN,
    SAFETY_REFERENCE_TEMPERATURE,
    TELEMETRY_HISTORY_CAPACITY,
    TELEMETRY_PERIOD_TICKS,
    TICK_SECONDS,
    WALL_INTEGRITY_FULL,
)


@dataclass
class SimulationState:
    """Cross-tick counters owned by the episode controller."""

    total_energy_mev: float = 0.0
    wall_integrity: float = WALL_INTEGRITY_FULL
    fusions_in_window: int = 0
    energy_in_window_mev: float = 0.0
    peak_fusion_rate: int = 0
    tick_count: int = 0

    @property
    def elapsed_seconds(self) -> float:
        return self.tick_count * TICK_SECONDS

    def copy(self) -> "SimulationState":
        return SimulationState(**asdict(self))


@dataclass(frozen=True)
class TelemetrySnapshot:
    timestamp: float
    q_factor: float
    fusion_rate: int
    particle_count: int
    magnetic_safety_factor: float
    fractal_dimension: float
    lyapunov_exponent: float
    temperature: float
    confinement: float
    total_energy_mev: float
    wall_integrity: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def fusion_rate(state: SimulationState) -> int:
    return int(state.fusions_in_window)


def q_factor(
    state: SimulationState,
    settings: SimulationSettings,
    particle_count: int,
    window_s: float,
) -> float:
    """Energy-out rate over the modelled heating input rate."""
    window = float(window_s)
    energy_in_rate = ENERGY_IN_COEFFICIENT * settings.temperature * settings.confinement * int(particle_count)
    if window <= 0.0 or energy_in_rate <= 0.0:
        return 0.0
    energy_out_rate = state.energy_in_window_mev / window
    return float(energy_out_rate / energy_in_rate)


def magnetic_safety_factor(temperature: float, confinement: float) -> float:
    """Safety-factor proxy; rises with confinement, falls with temperature."""
    t = max(float(temperature), 0.0)
    c = max(float(confinement), 0.0)
    return SAFETY_FACTOR_BASE + SAFETY_FACTOR_GAIN * c / (1.0 + t / SAFETY_REFERENCE_TEMPERATURE)


def fractal_dimension(safety_factor: float) -> float:
    """Turbulence proxy in [1, 2); 1.0 when the safety factor sits on PHI."""
    return 1.0 + (1.0 - math.exp(-2.0 * abs(float(safety_factor) - PHI)))


def lyapunov_exponent(safety_factor: float, temperature: float) -> float:
    return math.log1p(abs(float(safety_factor) - PHI)) * max(float(temperature), 0.0) / SAFETY_REFERENCE_TEMPERATURE


def reward_proxy(snapshot: TelemetrySnapshot) -> float:
    """Scalar reward for advisory and RL consumers."""
    wall_loss = WALL_INTEGRITY_FULL - snapshot.wall_integrity
    return float(
        snapshot.q_factor
        + 0.01 * snapshot.total_energy_mev
        - 0.05 * wall_loss
        - 0.5 * abs(snapshot.magnetic_safety_factor - PHI)
    )


class TelemetryAggregator:
    """Samples counters into snapshots kept in a bounded history."""

    def __init__(
        self,
        capacity: int = TELEMETRY_HISTORY_CAPACITY,
        window_s: float = TELEMETRY_PERIOD_TICKS * TICK_SECONDS,
    ) -> None:
        self.capacity = max(int(capacity), 1)
        self.window_s = float(window_s)
        self.history: Deque[TelemetrySnapshot] = deque(maxlen=self.capacity)

    @property
    def latest(self) -> TelemetrySnapshot | None:
        return self.history[-1] if self.history else None

    def clear(self) -> None:
        self.history.clear()

    def sample(
        self,
        state: SimulationState,
        settings: SimulationSettings,
        particle_count: int,
        timestamp: float | None = None,
        window_s: float | None = None,
    ) -> TelemetrySnapshot:
        """
        Build a snapshot from the current window and reset the window counters.

        Updates ``state.peak_fusion_rate``; a window without fusions yields
        rate 0.
        """
        window = self.window_s if window_s is None else float(window_s)
        rate = fusion_rate(state)
        q_safety = magnetic_safety_factor(settings.temperature, settings.confinement)
        snapshot = TelemetrySnapshot(
            timestamp=float(state.elapsed_seconds if timestamp is None else timestamp),
            q_factor=q_factor(state, settings, particle_count, window),
            fusion_rate=rate,
            particle_count=int(particle_count),
            magnetic_safety_factor=q_safety,
            fractal_dimension=fractal_dimension(q_safety),
            lyapunov_exponent=lyapunov_exponent(q_safety, settings.temperature),
            temperature=float(settings.temperature),
            confinement=float(settings.confinement),
            total_energy_mev=float(state.total_energy_mev),
            wall_integrity=float(state.wall_integrity),
        )
        state.peak_fusion_rate = max(state.peak_fusion_rate, rate)
        state.fusions_in_window = 0
        state.energy_in_window_mev = 0.0
        self.history.append(snapshot)
        return snapshot

    def window(self, size: int) -> list[TelemetrySnapshot]:
        """Most recent ``size`` snapshots, oldest first."""
        size = max(int(size), 0)
        if size == 0:
            return []
        return list(self.history)[-size:]
