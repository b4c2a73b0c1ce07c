# ──────────────────────────────────────────────────────────────────────
# FusionFlow Core — Advisory Interface Tests
# © 1998–2026 Miroslav Šotek. All rights reserved.
# Contact: www.anulum.li | protoscience@anulum.li
# ORCID: https://orcid.org/0009-0009-3560-0851
# License: GNU AGPL v3 | Commercial licensing available
# ──────────────────────────────────────────────────────────────────────
from __future__ import annotations

import json
import threading

import pytest

from fusionflow.control.advisory import (
    AdvisoryAction,
    AdvisoryError,
    AdvisoryRequest,
    RuleBasedAdvisor,
    parse_advisory_payload,
)
from fusionflow.control.episode_controller import ControllerState, EpisodeController
from fusionflow.core.config_schema import EngineConfig, SimulationSettings
from fusionflow.core.constants import PHI, ReactionMode, Species
from fusionflow.core.telemetry import TelemetrySnapshot


def _snap(rate: int = 3, lyapunov: float = 0.1, safety: float = PHI, wall: float = 100.0) -> TelemetrySnapshot:
    return TelemetrySnapshot(
        timestamp=1.0,
        q_factor=0.5,
        fusion_rate=rate,
        particle_count=50,
        magnetic_safety_factor=safety,
        fractal_dimension=1.0,
        lyapunov_exponent=lyapunov,
        temperature=100.0,
        confinement=0.2,
        total_energy_mev=100.0,
        wall_integrity=wall,
    )


def _request(*snaps: TelemetrySnapshot) -> AdvisoryRequest:
    return AdvisoryRequest(telemetry_window=tuple(snaps), settings=SimulationSettings())


def _running_controller() -> EpisodeController:
    ctrl = EpisodeController(EngineConfig(seed=8))
    ctrl.run(24)
    return ctrl


class StaticAdvisor:
    def __init__(self, response) -> None:
        self.response = response
        self.requests: list[AdvisoryRequest] = []

    def advise(self, request):
        self.requests.append(request)
        return self.response


# ── Payload parsing ──────────────────────────────────────────────────


def test_parse_json_payload_with_camel_case_mode() -> None:
    raw = json.dumps(
        {
            "decision": "adjust_parameters",
            "reasoning": "try the aneutronic channel",
            "parameters": {"temperature": 180, "reactionMode": "DD_DHe3"},
        }
    )
    action = parse_advisory_payload(raw)
    assert action.decision == "adjust_parameters"
    assert action.parameters.temperature == 180.0
    assert action.parameters.reaction_mode == ReactionMode.DD_DHE3
    assert action.parameters.confinement is None


@pytest.mark.parametrize(
    "payload",
    [
        "{not json",
        "[1, 2]",
        {"decision": "explode"},
        {"reasoning": "missing decision"},
        {"decision": "adjust_parameters", "parameters": {"reactionMode": "pB11"}},
        42,
    ],
)
def test_malformed_payloads_raise_advisory_error(payload) -> None:
    with pytest.raises(AdvisoryError):
        parse_advisory_payload(payload)


def test_request_payload_is_json_serialisable() -> None:
    payload = _request(_snap(), _snap(rate=0)).to_payload()
    text = json.dumps(payload)
    assert '"telemetryHistory"' in text
    assert len(payload["telemetryHistory"]) == 2
    assert payload["settings"]["reaction_mode"] == "DT"


# ── Rule-based advisor ───────────────────────────────────────────────


def test_rule_advisor_no_change_without_telemetry() -> None:
    assert RuleBasedAdvisor().advise(_request()).decision == "no_change"


def test_rule_advisor_restarts_on_critical_wall() -> None:
    action = RuleBasedAdvisor().advise(_request(_snap(), _snap(wall=10.0)))
    assert action.decision == "restart_simulation"


def test_rule_advisor_cools_chaotic_plasma() -> None:
    action = RuleBasedAdvisor().advise(_request(_snap(lyapunov=2.0), _snap(lyapunov=2.5)))
    assert action.decision == "adjust_parameters"
    assert action.parameters.temperature == pytest.approx(80.0)


def test_rule_advisor_heats_when_no_fusions() -> None:
    action = RuleBasedAdvisor().advise(_request(_snap(rate=0), _snap(rate=0)))
    assert action.decision == "adjust_parameters"
    assert action.parameters.temperature == pytest.approx(120.0)


def test_rule_advisor_steers_safety_factor_towards_phi() -> None:
    high = RuleBasedAdvisor().advise(_request(_snap(safety=3.0)))
    low = RuleBasedAdvisor().advise(_request(_snap(safety=1.0)))
    assert high.parameters.confinement == pytest.approx(0.1)
    assert low.parameters.confinement == pytest.approx(0.3)


def test_rule_advisor_holds_inside_envelope() -> None:
    assert RuleBasedAdvisor().advise(_request(_snap(safety=1.7))).decision == "no_change"


# ── Controller integration ───────────────────────────────────────────


def test_apply_adjustment_clamps_to_bounds() -> None:
    ctrl = _running_controller()
    changed = ctrl.apply_advice(
        {"decision": "adjust_parameters", "parameters": {"temperature": 5000, "confinement": -1}}
    )
    assert changed
    assert ctrl.settings.temperature == 300.0
    assert ctrl.settings.confinement == 0.1
    assert ctrl.state.tick_count == 24


def test_apply_restart_goes_through_reset() -> None:
    ctrl = _running_controller()
    episode = ctrl.episode
    assert ctrl.apply_advice(AdvisoryAction(decision="restart_simulation", reasoning="wall low"))
    assert ctrl.episode == episode + 1
    assert ctrl.status == ControllerState.RUNNING
    assert ctrl.state.tick_count == 0
    assert ctrl.archive.top_runs()[0].termination == "reset"


def test_apply_mode_switch_resets_episode() -> None:
    ctrl = _running_controller()
    ctrl.apply_advice({"decision": "adjust_parameters", "parameters": {"reactionMode": "DD_DHe3"}})
    assert ctrl.settings.reaction_mode == ReactionMode.DD_DHE3
    assert ctrl.state.tick_count == 0
    assert {p.species for p in ctrl.core.ensemble} == {Species.D}


def test_no_change_leaves_state_untouched() -> None:
    ctrl = _running_controller()
    before = ctrl.snapshot()
    assert not ctrl.apply_advice({"decision": "no_change", "reasoning": "steady"})
    after = ctrl.snapshot()
    assert after.settings == before.settings
    assert after.state == before.state


def test_request_advice_passes_window_and_top_runs() -> None:
    ctrl = EpisodeController(EngineConfig(seed=8, advisory_window=3))
    ctrl.run(120)
    ctrl.stop()
    ctrl.start()
    advisor = StaticAdvisor({"decision": "no_change"})

    action = ctrl.request_advice(advisor, timeout_s=5.0)

    assert action.decision == "no_change"
    request = advisor.requests[0]
    assert len(request.telemetry_window) == 3
    assert len(request.top_runs) == 1
    assert request.settings == ctrl.settings


def test_request_advice_timeout_leaves_controller_untouched() -> None:
    ctrl = _running_controller()
    release = threading.Event()

    class SlowAdvisor:
        def advise(self, request):
            release.wait(5.0)
            return {"decision": "restart_simulation"}

    before = ctrl.snapshot()
    try:
        with pytest.raises(AdvisoryError, match="timed out"):
            ctrl.request_advice(SlowAdvisor(), timeout_s=0.05)
    finally:
        release.set()
    after = ctrl.snapshot()
    assert after.episode == before.episode
    assert after.state == before.state
    assert after.status == ControllerState.RUNNING


def test_request_advice_wraps_advisor_exceptions() -> None:
    ctrl = _running_controller()

    class BrokenAdvisor:
        def advise(self, request):
            raise ConnectionError("model endpoint unreachable")

    with pytest.raises(AdvisoryError, match="ConnectionError"):
        ctrl.request_advice(BrokenAdvisor())
    assert ctrl.status == ControllerState.RUNNING


def test_request_advice_rejects_malformed_response() -> None:
    ctrl = _running_controller()
    with pytest.raises(AdvisoryError):
        ctrl.request_advice(StaticAdvisor("definitely not json"))


def test_run_with_rule_advisor_keeps_ticking() -> None:
    ctrl = EpisodeController(EngineConfig(seed=21))
    snap = ctrl.run(240, advisor=RuleBasedAdvisor(), advise_every=60)
    assert snap.status == ControllerState.RUNNING
    assert snap.state.tick_count > 0
