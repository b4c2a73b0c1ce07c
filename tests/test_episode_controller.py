# ──────────────────────────────────────────────────────────────────────
# FusionFlow Core — Episode Controller Tests
# © 1998–2026 Miroslav Šotek. All rights reserved.
# Contact: www.anulum.li | protoscience@anulum.li
# ORCID: https://orcid.org/0009-0009-3560-0851
# License: GNU AGPL v3 | Commercial licensing available
# ──────────────────────────────────────────────────────────────────────
"""
Covers:
  - IDLE / RUNNING / FAULTED transitions and summary persistence
  - wall failure: persisted once, logged, auto reset
  - seeded end-to-end episode invariants (energy quanta, particle
    bookkeeping, fusion rate vs eligible pairs)
  - commands serialised against a ticking thread
"""

from __future__ import annotations

import logging
import threading

import numpy as np
import pytest

from fusionflow.control.episode_controller import ControllerState, EpisodeController
from fusionflow.core.config_schema import EngineConfig, SimulationSettings
from fusionflow.core.constants import DT_FUSION_ENERGY_MEV, PhysicsMode, ReactionMode, Species
from fusionflow.io.run_archive import InMemoryRunArchive


def _controller(**overrides) -> tuple[EpisodeController, InMemoryRunArchive]:
    archive = InMemoryRunArchive()
    cfg = EngineConfig(seed=1234, **overrides)
    return EpisodeController(cfg, archive=archive), archive


def _force_wall_contact(ctrl: EpisodeController) -> None:
    p = ctrl.core.ensemble[0]
    p.x = 6.0
    p.vx = -50.0


# ── State machine ────────────────────────────────────────────────────


def test_tick_is_noop_until_started() -> None:
    ctrl, _ = _controller()
    assert ctrl.status == ControllerState.IDLE
    assert ctrl.tick() is None
    assert ctrl.state.tick_count == 0

    ctrl.start()
    assert ctrl.status == ControllerState.RUNNING
    assert ctrl.tick() is not None
    assert ctrl.state.tick_count == 1


def test_stop_persists_summary_and_start_resumes() -> None:
    ctrl, archive = _controller()
    ctrl.start()
    for _ in range(30):
        ctrl.tick()
    particles_before = [(p.id, p.x, p.y) for p in ctrl.core.ensemble]

    summary = ctrl.stop()

    assert ctrl.status == ControllerState.IDLE
    assert summary is not None
    assert summary.termination == "stopped"
    assert summary.duration_seconds == pytest.approx(0.5)
    assert archive.runs == [summary]

    ctrl.start()
    assert [(p.id, p.x, p.y) for p in ctrl.core.ensemble] == particles_before
    assert ctrl.state.tick_count == 30


def test_stop_when_idle_persists_nothing() -> None:
    ctrl, archive = _controller()
    assert ctrl.stop() is None
    assert archive.runs == []


def test_reset_zeroes_counters_and_persists_once() -> None:
    ctrl, archive = _controller()
    ctrl.start()
    for _ in range(24):
        ctrl.tick()
    episode = ctrl.episode

    ctrl.reset()

    assert ctrl.status == ControllerState.IDLE
    assert ctrl.episode == episode + 1
    assert ctrl.state.tick_count == 0
    assert ctrl.state.total_energy_mev == 0.0
    assert ctrl.state.wall_integrity == 100.0
    assert len(ctrl.telemetry.history) == 0
    assert len(ctrl.core.ensemble) == ctrl.settings.initial_particle_count
    assert [s.termination for s in archive.runs] == ["reset"]

    ctrl.reset(start=True)
    assert ctrl.status == ControllerState.RUNNING
    assert len(archive.runs) == 1


def test_start_with_reset_flag_rebuilds_ensemble() -> None:
    ctrl, _ = _controller()
    ctrl.start()
    ctrl.tick()
    ctrl.stop()
    ctrl.start(reset=True)
    assert ctrl.status == ControllerState.RUNNING
    assert ctrl.state.tick_count == 0


def test_seeded_reset_reproduces_ensemble() -> None:
    ctrl, _ = _controller()
    ctrl.reset(seed=77)
    first = [(p.species, p.x, p.y) for p in ctrl.core.ensemble]
    ctrl.reset(seed=77)
    assert [(p.species, p.x, p.y) for p in ctrl.core.ensemble] == first


def test_reaction_mode_change_implies_reset() -> None:
    ctrl, archive = _controller()
    ctrl.start()
    for _ in range(5):
        ctrl.tick()

    ctrl.set_reaction_mode(ReactionMode.DD_DHE3)

    assert ctrl.settings.reaction_mode == ReactionMode.DD_DHE3
    assert ctrl.status == ControllerState.RUNNING
    assert ctrl.state.tick_count == 0
    assert {p.species for p in ctrl.core.ensemble} == {Species.D}
    assert [s.termination for s in archive.runs] == ["reset"]


def test_physics_mode_change_implies_reset() -> None:
    ctrl, _ = _controller()
    episode = ctrl.episode
    ctrl.set_physics_mode("orbital")
    assert ctrl.settings.physics_mode == PhysicsMode.ORBITAL
    assert ctrl.episode == episode + 1
    ctrl.set_physics_mode(PhysicsMode.ORBITAL)
    assert ctrl.episode == episode + 1


def test_setters_clamp() -> None:
    ctrl, _ = _controller()
    assert ctrl.set_temperature(900.0) == 300.0
    assert ctrl.set_confinement(0.0) == 0.1
    assert ctrl.set_initial_particle_count(1000) == 150
    assert ctrl.set_energy_threshold(-4.0) == 0.0
    # particle count applies on the next reset
    assert len(ctrl.core.ensemble) == 60
    ctrl.reset()
    assert len(ctrl.core.ensemble) == 150


def test_snapshot_is_a_detached_copy() -> None:
    ctrl, _ = _controller()
    ctrl.start()
    for _ in range(12):
        ctrl.tick()
    snap = ctrl.snapshot()
    snap.particles[0].x = -100.0
    snap.settings.temperature = 250.0
    snap.state.total_energy_mev = 1e9

    assert ctrl.core.ensemble[0].x != -100.0
    assert ctrl.settings.temperature == 100.0
    assert ctrl.state.total_energy_mev != 1e9
    assert snap.latest_telemetry is not None
    assert snap.status == ControllerState.RUNNING


def test_settings_and_state_properties_are_copies() -> None:
    ctrl, _ = _controller()
    ctrl.start()
    ctrl.tick()
    settings = ctrl.settings
    state = ctrl.state
    settings.temperature = 250.0
    state.total_energy_mev = 1e9
    state.tick_count = 99

    assert ctrl.settings.temperature == 100.0
    assert ctrl.state.total_energy_mev != 1e9
    assert ctrl.state.tick_count == 1


def test_telemetry_sampled_on_cadence() -> None:
    ctrl, _ = _controller(telemetry_period_ticks=12)
    ctrl.start()
    for _ in range(36):
        ctrl.tick()
    assert len(ctrl.telemetry.history) == 3
    assert ctrl.telemetry.latest.timestamp == pytest.approx(36 / 60)


def test_external_sampling_with_zero_elapsed_ticks() -> None:
    ctrl, _ = _controller(telemetry_period_ticks=0)
    snap = ctrl.sample_telemetry()
    assert snap.fusion_rate == 0
    assert snap.q_factor == 0.0


# ── Wall failure ─────────────────────────────────────────────────────


def test_wall_failure_persists_once_and_auto_resets(caplog) -> None:
    ctrl, archive = _controller(wall_damage_per_hit=100.0)
    ctrl.start()
    _force_wall_contact(ctrl)
    episode = ctrl.episode

    with caplog.at_level(logging.WARNING, logger="fusionflow"):
        ctrl.tick()

    assert [s.termination for s in archive.runs] == ["wall_failure"]
    summary = archive.runs[0]
    assert summary.final_wall_integrity == 0.0
    assert ctrl.last_summary == summary
    assert ctrl.status == ControllerState.IDLE
    assert ctrl.episode == episode + 1
    assert ctrl.state.wall_integrity == 100.0
    records = [r for r in caplog.records if "Wall failure" in r.getMessage()]
    assert len(records) == 1
    assert records[0].levelno == logging.WARNING
    assert records[0].physics_context["tick"] == 1


def test_wall_failure_without_auto_reset_stays_faulted() -> None:
    ctrl, archive = _controller(wall_damage_per_hit=100.0, auto_reset_on_fault=False)
    ctrl.start()
    _force_wall_contact(ctrl)
    ctrl.tick()

    assert ctrl.status == ControllerState.FAULTED
    assert ctrl.tick() is None
    assert ctrl.stop() is None

    ctrl.reset()
    assert ctrl.status == ControllerState.IDLE
    assert len(archive.runs) == 1


def test_start_from_faulted_resets_first() -> None:
    ctrl, archive = _controller(wall_damage_per_hit=100.0, auto_reset_on_fault=False)
    ctrl.start()
    _force_wall_contact(ctrl)
    ctrl.tick()
    ctrl.start()
    assert ctrl.status == ControllerState.RUNNING
    assert ctrl.state.wall_integrity == 100.0
    assert len(archive.runs) == 1


def test_archive_write_failure_does_not_break_tick(caplog) -> None:
    class BrokenArchive(InMemoryRunArchive):
        def save(self, summary) -> None:
            raise OSError("disk full")

    ctrl = EpisodeController(EngineConfig(seed=3, wall_damage_per_hit=100.0), archive=BrokenArchive())
    ctrl.start()
    _force_wall_contact(ctrl)
    with caplog.at_level(logging.ERROR, logger="fusionflow"):
        ctrl.tick()
    assert ctrl.status == ControllerState.IDLE
    assert ctrl.last_summary is not None
    assert any("disk full" in r.getMessage() for r in caplog.records)


# ── End to end ───────────────────────────────────────────────────────


def test_seeded_dt_episode_invariants() -> None:
    settings = SimulationSettings(temperature=100.0, confinement=0.2, reaction_mode="DT", initial_particle_count=60)
    cfg = EngineConfig(seed=2024, telemetry_period_ticks=0, wall_damage_per_hit=0.0, settings=settings)
    ctrl = EpisodeController(cfg)
    ctrl.start()

    fusions = 0
    peak = 0
    eligible_in_window = 0
    fusions_in_window = 0
    last_energy = 0.0
    for tick in range(1, 1001):
        result = ctrl.tick()
        fusions += result.fusions
        fusions_in_window += result.fusions
        eligible_in_window += result.eligible_pairs
        assert result.fusions <= result.eligible_pairs
        assert ctrl.state.total_energy_mev >= last_energy
        last_energy = ctrl.state.total_energy_mev
        if tick % 12 == 0:
            snap = ctrl.sample_telemetry()
            assert snap.fusion_rate == fusions_in_window
            assert snap.fusion_rate <= eligible_in_window
            peak = max(peak, snap.fusion_rate)
            eligible_in_window = 0
            fusions_in_window = 0

    energy = ctrl.state.total_energy_mev
    quanta = round(energy / DT_FUSION_ENERGY_MEV)
    assert quanta == fusions
    assert energy == pytest.approx(quanta * DT_FUSION_ENERGY_MEV)
    assert len(ctrl.core.ensemble) == 60 - 2 * fusions
    assert ctrl.state.wall_integrity == 100.0
    assert ctrl.state.peak_fusion_rate == peak


def test_identical_seeds_give_identical_summaries() -> None:
    summaries = []
    for _ in range(2):
        ctrl, _ = _controller()
        ctrl.run(300)
        summary = ctrl.stop()
        summaries.append(summary.model_dump(exclude={"created_at"}))
    assert summaries[0] == summaries[1]


def test_run_stops_early_on_wall_failure() -> None:
    ctrl, archive = _controller(wall_damage_per_hit=100.0)
    ctrl.start()
    _force_wall_contact(ctrl)
    snap = ctrl.run(50)
    assert snap.status == ControllerState.IDLE
    assert snap.state.tick_count == 0
    assert len(archive.runs) == 1


def test_commands_interleave_only_between_ticks() -> None:
    ctrl = EpisodeController(EngineConfig(seed=5), rng=np.random.default_rng(5))
    ctrl.start()
    errors: list[BaseException] = []

    def drive() -> None:
        try:
            for _ in range(300):
                ctrl.tick()
        except BaseException as exc:  # noqa: BLE001
            errors.append(exc)

    worker = threading.Thread(target=drive)
    worker.start()
    for i in range(100):
        ctrl.set_temperature(50.0 + i)
        ctrl.set_confinement(0.1 + 0.01 * i)
        snap = ctrl.snapshot()
        assert len(snap.particles) == len({p.id for p in snap.particles})
    worker.join(timeout=30.0)

    assert not errors
    assert ctrl.state.tick_count == 300
