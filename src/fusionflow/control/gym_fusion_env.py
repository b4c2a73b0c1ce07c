# ──────────────────────────────────────────────────────────────────────
# FusionFlow Core — Gymnasium Fusion Environment
# © 1998–2026 Miroslav Šotek. All rights reserved.
# Contact: www.anulum.li | protoscience@anulum.li
# ORCID: https://orcid.org/0009-0009-3560-0851
# License: GNU AGPL v3 | Commercial licensing available
# ──────────────────────────────────────────────────────────────────────
"""
Gymnasium environment over the episode controller.

One environment step advances one telemetry window and returns the
resulting snapshot as the observation.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

import gymnasium as gym
import numpy as np
from gymnasium import spaces

from fusionflow.core.config_schema import EngineConfig
from fusionflow.core.constants import (
    CONFINEMENT_BOUNDS,
    TELEMETRY_PERIOD_TICKS,
    TEMPERATURE_BOUNDS,
    WALL_INTEGRITY_FULL,
)
from fusionflow.core.telemetry import TelemetrySnapshot, reward_proxy
from fusionflow.control.episode_controller import ControllerState, EpisodeController
from fusionflow.io.run_archive import InMemoryRunArchive

logger = logging.getLogger(__name__)

WALL_FAILURE_PENALTY = 10.0


class FusionFlowEnv(gym.Env):
    """
    Observation Space (Box):
        [Q, fusion_rate, particle_count, safety_q, fractal_D, lyapunov,
         temperature, confinement, wall_integrity]

    Action Space (Box):
        [temperature_delta, confinement_delta] normalized to [-1, 1]
    """

    metadata = {"render_modes": ["human"], "render_fps": 5}

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        max_steps: int = 100,
        temperature_step: float = 10.0,
        confinement_step: float = 0.05,
        render_mode: Optional[str] = None,
        archive_size: int = 50,
    ):
        super().__init__()
        self.config = config.model_copy(deep=True) if config is not None else EngineConfig()
        self.window_ticks = self.config.telemetry_period_ticks or TELEMETRY_PERIOD_TICKS
        # step() closes telemetry windows and handles faults itself
        self.config.telemetry_period_ticks = 0
        self.config.auto_reset_on_fault = False
        self.max_steps = int(max_steps)
        self.render_mode = render_mode

        obs_low = np.array(
            [0.0, 0.0, 0.0, 1.0, 1.0, 0.0, TEMPERATURE_BOUNDS[0], CONFINEMENT_BOUNDS[0], 0.0],
            dtype=np.float32,
        )
        obs_high = np.array(
            [np.inf, np.inf, np.inf, np.inf, 2.0, np.inf, TEMPERATURE_BOUNDS[1], CONFINEMENT_BOUNDS[1], WALL_INTEGRITY_FULL],
            dtype=np.float32,
        )
        self.observation_space = spaces.Box(low=obs_low, high=obs_high, dtype=np.float32)
        self.action_space = spaces.Box(low=-1.0, high=1.0, shape=(2,), dtype=np.float32)
        self._action_scale = np.array([temperature_step, confinement_step], dtype=np.float64)

        # every reset archives a summary; keep only the best runs
        self.controller = EpisodeController(self.config, archive=InMemoryRunArchive(maxlen=archive_size))
        self.current_step = 0

    @staticmethod
    def _to_obs(snap: TelemetrySnapshot) -> np.ndarray:
        return np.array(
            [
                snap.q_factor,
                snap.fusion_rate,
                snap.particle_count,
                snap.magnetic_safety_factor,
                snap.fractal_dimension,
                snap.lyapunov_exponent,
                snap.temperature,
                snap.confinement,
                snap.wall_integrity,
            ],
            dtype=np.float32,
        )

    def reset(
        self,
        seed: Optional[int] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> Tuple[np.ndarray, Dict[str, Any]]:
        super().reset(seed=seed)
        episode_seed = int(self.np_random.integers(0, 2**31 - 1))
        base = self.config.settings
        self.controller.set_temperature(base.temperature)
        self.controller.set_confinement(base.confinement)
        self.controller.reset(start=True, seed=episode_seed)
        self.current_step = 0
        snap = self.controller.sample_telemetry()
        return self._to_obs(snap), {"episode": self.controller.episode}

    def step(self, action: np.ndarray) -> Tuple[np.ndarray, float, bool, bool, Dict[str, Any]]:
        delta = np.clip(np.asarray(action, dtype=np.float64), -1.0, 1.0) * self._action_scale
        settings = self.controller.settings
        self.controller.set_temperature(settings.temperature + float(delta[0]))
        self.controller.set_confinement(settings.confinement + float(delta[1]))

        energy = 0.0
        for _ in range(self.window_ticks):
            result = self.controller.tick()
            if result is None:
                break
            energy += result.energy_released_mev

        wall_failure = self.controller.status == ControllerState.FAULTED
        if wall_failure and self.controller.telemetry.latest is not None:
            # the fault summary already closed this window
            snap = self.controller.telemetry.latest
        else:
            snap = self.controller.sample_telemetry()
        obs = self._to_obs(snap)
        reward = reward_proxy(snap)
        if wall_failure:
            reward -= WALL_FAILURE_PENALTY

        self.current_step += 1
        terminated = wall_failure
        truncated = self.current_step >= self.max_steps
        info = {"energy_mev": energy, "wall_failure": wall_failure, "fusion_rate": snap.fusion_rate}
        return obs, float(reward), terminated, truncated, info

    def render(self):
        if self.render_mode == "human":
            snap = self.controller.telemetry.latest
            if snap is not None:
                logger.info(
                    "Step %d: Q=%.3f rate=%d wall=%.1f",
                    self.current_step,
                    snap.q_factor,
                    snap.fusion_rate,
                    snap.wall_integrity,
                )


def register() -> None:
    gym.envs.registration.register(
        id="FusionFlow-v0",
        entry_point="fusionflow.control.gym_fusion_env:FusionFlowEnv",
    )
