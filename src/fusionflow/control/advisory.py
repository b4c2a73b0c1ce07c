# ──────────────────────────────────────────────────────────────────────
# FusionFlow Core — Advisory Interface
# © 1998–2026 Miroslav Šotek. All rights reserved.
# Contact: www.anulum.li | protoscience@anulum.li
# ORCID: https://orcid.org/0009-0009-3560-0851
# License: GNU AGPL v3 | Commercial licensing available
# ──────────────────────────────────────────────────────────────────────
"""
Contract between the episode controller and an external parameter advisor.

An advisor receives an ``AdvisoryRequest`` built from a controller snapshot
and returns an ``AdvisoryAction``. Advisors run outside the tick on a worker
thread; anything they return is validated here before it reaches the
controller. ``RuleBasedAdvisor`` is the deterministic reference advisor
used by the CLI and the tests.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Optional, Protocol, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from fusionflow.core.config_schema import SimulationSettings
from fusionflow.core.constants import PHI, ReactionMode
from fusionflow.core.telemetry import TelemetrySnapshot
from fusionflow.io.run_archive import EpisodeSummary

logger = logging.getLogger(__name__)

Decision = Literal["adjust_parameters", "restart_simulation", "no_change"]


class AdvisoryError(RuntimeError):
    """Advisor timed out, raised, or returned an unusable response."""


class AdvisoryParameters(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    temperature: Optional[float] = None
    confinement: Optional[float] = None
    reaction_mode: Optional[ReactionMode] = Field(default=None, alias="reactionMode")


class AdvisoryAction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    decision: Decision
    reasoning: str = ""
    parameters: Optional[AdvisoryParameters] = None


@dataclass(frozen=True)
class AdvisoryRequest:
    telemetry_window: tuple[TelemetrySnapshot, ...]
    settings: SimulationSettings
    reward: float = 0.0
    top_runs: tuple[EpisodeSummary, ...] = field(default_factory=tuple)

    def to_payload(self) -> dict[str, Any]:
        """JSON-serialisable view for advisors that talk to a remote service."""
        return {
            "settings": self.settings.model_dump(mode="json"),
            "telemetryHistory": [snap.to_dict() for snap in self.telemetry_window],
            "currentReward": self.reward,
            "topRuns": [run.model_dump(mode="json") for run in self.top_runs],
        }


class Advisor(Protocol):
    def advise(self, request: AdvisoryRequest) -> AdvisoryAction: ...


def parse_advisory_payload(payload: Union[str, bytes, dict, AdvisoryAction]) -> AdvisoryAction:
    """Validate a raw advisor response, raising ``AdvisoryError`` on any defect."""
    if isinstance(payload, AdvisoryAction):
        return payload
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except ValueError as exc:
            raise AdvisoryError(f"Advisor response is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise AdvisoryError(f"Advisor response must be a JSON object, got {type(payload).__name__}")
    try:
        return AdvisoryAction.model_validate(payload)
    except ValidationError as exc:
        raise AdvisoryError(f"Advisor response failed validation: {exc.error_count()} error(s)") from exc


class RuleBasedAdvisor:
    """Deterministic reference advisor driven by telemetry-window averages."""

    def __init__(
        self,
        wall_restart_threshold: float = 25.0,
        chaos_threshold: float = 1.0,
        safety_tolerance: float = 0.4,
        temperature_step: float = 20.0,
        confinement_step: float = 0.1,
    ) -> None:
        self.wall_restart_threshold = float(wall_restart_threshold)
        self.chaos_threshold = max(float(chaos_threshold), 1e-6)
        self.safety_tolerance = max(float(safety_tolerance), 1e-6)
        self.temperature_step = float(temperature_step)
        self.confinement_step = float(confinement_step)

    def advise(self, request: AdvisoryRequest) -> AdvisoryAction:
        window = request.telemetry_window
        if not window:
            return AdvisoryAction(decision="no_change", reasoning="No telemetry yet.")

        latest = window[-1]
        settings = request.settings
        if latest.wall_integrity < self.wall_restart_threshold:
            return AdvisoryAction(
                decision="restart_simulation",
                reasoning=f"Wall integrity {latest.wall_integrity:.1f}% is critical.",
            )

        mean_rate = float(np.mean([s.fusion_rate for s in window]))
        mean_lyap = float(np.mean([s.lyapunov_exponent for s in window]))
        safety_error = latest.magnetic_safety_factor - PHI

        if mean_lyap > self.chaos_threshold:
            return AdvisoryAction(
                decision="adjust_parameters",
                reasoning=f"Chaos proxy {mean_lyap:.2f} above {self.chaos_threshold:.2f}; cooling plasma.",
                parameters=AdvisoryParameters(temperature=settings.temperature - self.temperature_step),
            )
        if mean_rate <= 0.0:
            return AdvisoryAction(
                decision="adjust_parameters",
                reasoning="No fusions in the recent window; raising temperature.",
                parameters=AdvisoryParameters(temperature=settings.temperature + self.temperature_step),
            )
        if abs(safety_error) > self.safety_tolerance:
            # safety factor rises with confinement
            delta = -self.confinement_step if safety_error > 0.0 else self.confinement_step
            return AdvisoryAction(
                decision="adjust_parameters",
                reasoning=f"Safety factor {latest.magnetic_safety_factor:.2f} far from {PHI:.3f}.",
                parameters=AdvisoryParameters(confinement=settings.confinement + delta),
            )
        return AdvisoryAction(decision="no_change", reasoning="Reactor within operating envelope.")
