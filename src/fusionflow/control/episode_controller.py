# ──────────────────────────────────────────────────────────────────────
# FusionFlow Core — Episode Controller
# © 1998–2026 Miroslav Šotek. All rights reserved.
# Contact: www.anulum.li | protoscience@anulum.li
# ORCID: https://orcid.org/0009-0009-3560-0851
# License: GNU AGPL v3 | Commercial licensing available
# ──────────────────────────────────────────────────────────────────────
"""
Episode state machine around ``SimulationCore``.

The controller is the single writer of ensemble, settings and counters.
Every command and every tick takes the same re-entrant lock, so a command
always lands between two whole ticks. Readers get ``ControllerSnapshot``
copies; advisors run on a worker thread against such a copy.

States::

    IDLE --start--> RUNNING --stop--> IDLE
    RUNNING --wall integrity 0--> FAULTED --reset--> IDLE | RUNNING
    any --reset--> IDLE | RUNNING
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

import numpy as np

from fusionflow.core.config_schema import EngineConfig, SimulationSettings
from fusionflow.core.constants import TELEMETRY_PERIOD_TICKS, TICK_SECONDS, PhysicsMode, ReactionMode
from fusionflow.core.ensemble import Particle, RandomSource
from fusionflow.core.fusion_detector import FusionEvent
from fusionflow.core.simulation import SimulationCore, TickResult
from fusionflow.core.telemetry import (
    SimulationState,
    TelemetryAggregator,
    TelemetrySnapshot,
    reward_proxy,
)
from fusionflow.io.run_archive import (
    EpisodeSummary,
    InMemoryRunArchive,
    RunArchive,
    classify_outcome,
    composite_score,
)

from .advisory import (
    AdvisoryAction,
    AdvisoryError,
    AdvisoryRequest,
    Advisor,
    parse_advisory_payload,
)

logger = logging.getLogger(__name__)

TOP_RUNS_FOR_ADVICE = 5


class ControllerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    FAULTED = "faulted"


@dataclass(frozen=True)
class ControllerSnapshot:
    """Immutable copy of everything an observer may read."""

    status: ControllerState
    episode: int
    settings: SimulationSettings
    state: SimulationState
    particles: tuple[Particle, ...]
    flashes: tuple[FusionEvent, ...]
    telemetry: tuple[TelemetrySnapshot, ...]
    reward: float

    @property
    def latest_telemetry(self) -> Optional[TelemetrySnapshot]:
        return self.telemetry[-1] if self.telemetry else None


class EpisodeController:
    """
    Owns one ``SimulationCore`` and drives it through episodes.

    Parameters
    ----------
    config : EngineConfig, optional
        Engine configuration; defaults to ``EngineConfig()``.
    archive : RunArchive, optional
        Receives one ``EpisodeSummary`` per finished episode. Defaults to an
        in-memory archive.
    rng : numpy.random.Generator, optional
        Ensemble construction and thermal noise. Defaults to
        ``default_rng(config.seed)``.
    fusion_random_source : RandomSource, optional
        Source of per-pair fusion rolls; defaults to ``rng``.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        archive: Optional[RunArchive] = None,
        rng: Optional[np.random.Generator] = None,
        fusion_random_source: Optional[RandomSource] = None,
    ) -> None:
        self.config = config if config is not None else EngineConfig()
        self.archive: RunArchive = archive if archive is not None else InMemoryRunArchive()
        self._fusion_random_source = fusion_random_source
        rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self.core = SimulationCore(
            self.config.settings,
            rng=rng,
            fusion_random_source=fusion_random_source,
            wall_damage_per_hit=self.config.wall_damage_per_hit,
        )
        period = self.config.telemetry_period_ticks or TELEMETRY_PERIOD_TICKS
        self.telemetry = TelemetryAggregator(
            capacity=self.config.history_capacity,
            window_s=period * TICK_SECONDS,
        )
        self.status = ControllerState.IDLE
        self.episode = 1
        self.last_summary: Optional[EpisodeSummary] = None
        self.last_history: tuple[TelemetrySnapshot, ...] = ()
        self._initial_settings = self.core.settings.model_copy()
        self._ticks_since_sample = 0
        self._persisted_at_tick: Optional[int] = None
        self._lock = threading.RLock()

    # ── Read side ────────────────────────────────────────────────────

    @property
    def settings(self) -> SimulationSettings:
        """Copy of the live settings; change them through the setters."""
        with self._lock:
            return self.core.settings.model_copy()

    @property
    def state(self) -> SimulationState:
        with self._lock:
            return self.core.state.copy()

    def snapshot(self) -> ControllerSnapshot:
        with self._lock:
            latest = self.telemetry.latest
            return ControllerSnapshot(
                status=self.status,
                episode=self.episode,
                settings=self.core.settings.model_copy(),
                state=self.core.state.copy(),
                particles=tuple(p.copy() for p in self.core.ensemble),
                flashes=tuple(self.core.flashes),
                telemetry=tuple(self.telemetry.history),
                reward=reward_proxy(latest) if latest is not None else 0.0,
            )

    # ── Lifecycle commands ───────────────────────────────────────────

    def start(self, reset: bool = False) -> None:
        with self._lock:
            if reset or self.status == ControllerState.FAULTED:
                self._reset_locked(start=False)
            if self.status != ControllerState.RUNNING:
                self.status = ControllerState.RUNNING
                logger.info("Episode %d running (tick %d)", self.episode, self.core.state.tick_count)

    def stop(self) -> Optional[EpisodeSummary]:
        """Pause the episode and persist its summary; no-op unless running."""
        with self._lock:
            if self.status != ControllerState.RUNNING:
                return None
            summary = self._persist_locked("stopped")
            self.status = ControllerState.IDLE
            logger.info("Episode %d stopped", self.episode)
            return summary

    def reset(
        self,
        start: bool = False,
        reaction_mode: Optional[Union[ReactionMode, str]] = None,
        seed: Optional[int] = None,
    ) -> None:
        """
        Rebuild the ensemble from current settings and zero all counters.

        A summary is persisted first when the episode has unrecorded ticks.
        ``seed`` replaces the random generator for a reproducible episode.
        """
        with self._lock:
            self._reset_locked(start=start, reaction_mode=reaction_mode, seed=seed)

    def _reset_locked(
        self,
        start: bool,
        reaction_mode: Optional[Union[ReactionMode, str]] = None,
        seed: Optional[int] = None,
        physics_mode: Optional[Union[PhysicsMode, str]] = None,
    ) -> None:
        self._persist_locked("reset")
        if reaction_mode is not None:
            self.core.settings.reaction_mode = ReactionMode(reaction_mode)
        if physics_mode is not None:
            self.core.settings.physics_mode = PhysicsMode(physics_mode)
        rng = np.random.default_rng(seed) if seed is not None else None
        self.core.reinitialize(rng=rng, fusion_random_source=self._fusion_random_source)
        self.telemetry.clear()
        self._ticks_since_sample = 0
        self._persisted_at_tick = None
        self._initial_settings = self.core.settings.model_copy()
        self.episode += 1
        self.status = ControllerState.RUNNING if start else ControllerState.IDLE
        logger.info(
            "Episode %d reset (%s, %s, %d particles)",
            self.episode,
            self.core.settings.reaction_mode.value,
            self.core.settings.physics_mode.value,
            len(self.core.ensemble),
        )

    # ── Settings commands ────────────────────────────────────────────

    def set_temperature(self, value: float) -> float:
        with self._lock:
            self.core.settings.temperature = value
            return self.core.settings.temperature

    def set_confinement(self, value: float) -> float:
        with self._lock:
            self.core.settings.confinement = value
            return self.core.settings.confinement

    def set_initial_particle_count(self, value: int) -> int:
        """Takes effect on the next reset."""
        with self._lock:
            self.core.settings.initial_particle_count = value
            return self.core.settings.initial_particle_count

    def set_energy_threshold(self, value: float) -> float:
        with self._lock:
            self.core.settings.energy_threshold = value
            return self.core.settings.energy_threshold

    def set_reaction_mode(self, mode: Union[ReactionMode, str]) -> None:
        with self._lock:
            mode = ReactionMode(mode)
            if mode != self.core.settings.reaction_mode:
                self._reset_locked(start=self.status == ControllerState.RUNNING, reaction_mode=mode)

    def set_physics_mode(self, mode: Union[PhysicsMode, str]) -> None:
        with self._lock:
            mode = PhysicsMode(mode)
            if mode != self.core.settings.physics_mode:
                self._reset_locked(start=self.status == ControllerState.RUNNING, physics_mode=mode)

    # ── Tick pipeline ────────────────────────────────────────────────

    def tick(self) -> Optional[TickResult]:
        """Advance one fixed step; returns ``None`` unless running."""
        with self._lock:
            if self.status != ControllerState.RUNNING:
                return None
            result = self.core.advance()
            self.core.record(result)
            self._ticks_since_sample += 1

            period = self.config.telemetry_period_ticks
            if period > 0 and self._ticks_since_sample >= period:
                self._sample_locked()

            if self.core.state.wall_integrity <= 0.0:
                self._handle_wall_failure()
            return result

    def sample_telemetry(self) -> TelemetrySnapshot:
        """Close the current telemetry window; safe with zero elapsed ticks."""
        with self._lock:
            return self._sample_locked()

    def _sample_locked(self) -> TelemetrySnapshot:
        snap = self.telemetry.sample(
            self.core.state,
            self.core.settings,
            len(self.core.ensemble),
            window_s=self._ticks_since_sample * TICK_SECONDS,
        )
        self._ticks_since_sample = 0
        return snap

    def _handle_wall_failure(self) -> None:
        state = self.core.state
        self.status = ControllerState.FAULTED
        summary = self._persist_locked("wall_failure")
        logger.warning(
            "Wall failure in episode %d after %d ticks",
            self.episode,
            state.tick_count,
            extra={
                "physics_context": {
                    "episode": self.episode,
                    "tick": state.tick_count,
                    "total_energy_mev": state.total_energy_mev,
                    "particle_count": len(self.core.ensemble),
                    "score": summary.score if summary is not None else None,
                }
            },
        )
        if self.config.auto_reset_on_fault:
            self._reset_locked(start=False)

    def run(
        self,
        ticks: int,
        advisor: Optional[Advisor] = None,
        advise_every: int = 0,
        advisory_timeout_s: float = 5.0,
        realtime: bool = False,
    ) -> ControllerSnapshot:
        """
        Headless fixed-rate driver.

        Starts the episode if needed and stops early when the controller
        leaves ``RUNNING`` (wall failure). Advisory failures are logged and
        the run continues.
        """
        self.start()
        next_deadline = time.monotonic()
        for i in range(max(int(ticks), 0)):
            if self.status != ControllerState.RUNNING:
                break
            self.tick()
            if advisor is not None and advise_every > 0 and (i + 1) % advise_every == 0:
                try:
                    self.apply_advice(self.request_advice(advisor, timeout_s=advisory_timeout_s))
                except AdvisoryError as exc:
                    logger.warning("Advice skipped at tick %d: %s", i + 1, exc)
            if realtime:
                next_deadline += TICK_SECONDS
                delay = next_deadline - time.monotonic()
                if delay > 0.0:
                    time.sleep(delay)
        return self.snapshot()

    # ── Advisory integration ─────────────────────────────────────────

    def build_advisory_request(self) -> AdvisoryRequest:
        with self._lock:
            latest = self.telemetry.latest
            window = tuple(self.telemetry.window(self.config.advisory_window))
            settings = self.core.settings.model_copy()
            reward = reward_proxy(latest) if latest is not None else 0.0
        try:
            top_runs = tuple(self.archive.top_runs(TOP_RUNS_FOR_ADVICE))
        except OSError as exc:
            logger.warning("Run archive unavailable for advice: %s", exc)
            top_runs = ()
        return AdvisoryRequest(telemetry_window=window, settings=settings, reward=reward, top_runs=top_runs)

    def request_advice(self, advisor: Advisor, timeout_s: float = 5.0) -> AdvisoryAction:
        """
        Query ``advisor`` on a worker thread.

        Raises
        ------
        AdvisoryError
            On timeout, advisor exception or malformed response. Controller
            state is untouched in every case.
        """
        request = self.build_advisory_request()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="fusionflow-advisor")
        try:
            future = executor.submit(advisor.advise, request)
            try:
                raw = future.result(timeout=float(timeout_s))
            except FuturesTimeout as exc:
                future.cancel()
                logger.error("Advisor timed out after %.2fs", timeout_s)
                raise AdvisoryError(f"Advisor timed out after {timeout_s:.2f}s") from exc
            except AdvisoryError:
                logger.error("Advisor reported failure", exc_info=True)
                raise
            except Exception as exc:
                logger.error("Advisor raised %s: %s", exc.__class__.__name__, exc)
                raise AdvisoryError(f"Advisor raised {exc.__class__.__name__}: {exc}") from exc
        finally:
            executor.shutdown(wait=False)

        try:
            return parse_advisory_payload(raw)
        except AdvisoryError as exc:
            logger.error("Malformed advisor response: %s", exc)
            raise

    def apply_advice(self, action: Union[AdvisoryAction, dict, str]) -> bool:
        """
        Apply a validated advisory action; returns whether anything changed.

        Adjustments go through the clamping setters; a reaction-mode change
        or a restart goes through reset.
        """
        action = parse_advisory_payload(action)
        with self._lock:
            running = self.status == ControllerState.RUNNING
            if action.decision == "no_change":
                logger.debug("Advisor: no change (%s)", action.reasoning)
                return False
            if action.decision == "restart_simulation":
                logger.info("Advisor restart: %s", action.reasoning)
                self._reset_locked(start=running)
                return True

            params = action.parameters
            if params is None:
                return False
            changed = False
            if params.temperature is not None:
                before = self.core.settings.temperature
                changed |= self.set_temperature(params.temperature) != before
            if params.confinement is not None:
                before = self.core.settings.confinement
                changed |= self.set_confinement(params.confinement) != before
            if params.reaction_mode is not None and params.reaction_mode != self.core.settings.reaction_mode:
                self.set_reaction_mode(params.reaction_mode)
                changed = True
            logger.info(
                "Advisor adjust: T=%.1f C=%.2f mode=%s (%s)",
                self.core.settings.temperature,
                self.core.settings.confinement,
                self.core.settings.reaction_mode.value,
                action.reasoning,
            )
            return changed

    # ── Persistence ──────────────────────────────────────────────────

    def build_summary(self, termination: str) -> EpisodeSummary:
        with self._lock:
            if self._ticks_since_sample > 0 or self.telemetry.latest is None:
                self._sample_locked()
            latest = self.telemetry.latest
            state = self.core.state
            settings = self.core.settings
            initial = self._initial_settings
            return EpisodeSummary(
                duration_seconds=state.elapsed_seconds,
                total_energy_mev=state.total_energy_mev,
                peak_fusion_rate=state.peak_fusion_rate,
                outcome=classify_outcome(state.total_energy_mev),
                termination=termination,
                initial_particle_count=initial.initial_particle_count,
                initial_temperature=initial.temperature,
                initial_confinement=initial.confinement,
                final_energy_threshold=settings.energy_threshold,
                reaction_mode=settings.reaction_mode,
                physics_mode=settings.physics_mode,
                final_q_factor=latest.q_factor,
                final_lyapunov_exponent=latest.lyapunov_exponent,
                final_fractal_dimension=latest.fractal_dimension,
                final_magnetic_safety_factor=latest.magnetic_safety_factor,
                final_wall_integrity=state.wall_integrity,
                final_reward=reward_proxy(latest),
                score=composite_score(state.total_energy_mev, state.wall_integrity, state.peak_fusion_rate),
            )

    def _persist_locked(self, termination: str) -> Optional[EpisodeSummary]:
        tick = self.core.state.tick_count
        if tick == 0 or self._persisted_at_tick == tick:
            return None
        summary = self.build_summary(termination)
        self._persisted_at_tick = tick
        self.last_summary = summary
        self.last_history = tuple(self.telemetry.history)
        try:
            self.archive.save(summary)
        except OSError as exc:
            logger.error("Failed to archive episode %d summary: %s", self.episode, exc)
        else:
            logger.info(
                "Episode %d summary archived: %s, %.1f MeV, score %.1f",
                self.episode,
                summary.outcome,
                summary.total_energy_mev,
                summary.score,
            )
        return summary
