# ──────────────────────────────────────────────────────────────────────
# FusionFlow Core — Telemetry Export Tests
# © 1998–2026 Miroslav Šotek. All rights reserved.
# Contact: www.anulum.li | protoscience@anulum.li
# ORCID: https://orcid.org/0009-0009-3560-0851
# License: GNU AGPL v3 | Commercial licensing available
# ──────────────────────────────────────────────────────────────────────
from __future__ import annotations

import pandas as pd

from fusionflow.core.config_schema import SimulationSettings
from fusionflow.core.telemetry import SimulationState, TelemetryAggregator
from fusionflow.io.telemetry_export import TELEMETRY_COLUMNS, export_csv, history_to_frame, plot_telemetry


def _history(n: int = 5):
    agg = TelemetryAggregator()
    cfg = SimulationSettings()
    state = SimulationState()
    for i in range(n):
        state.fusions_in_window = i
        state.energy_in_window_mev = 17.6 * i
        state.total_energy_mev += 17.6 * i
        agg.sample(state, cfg, 60 - 2 * i, timestamp=0.2 * (i + 1))
    return list(agg.history)


def test_history_to_frame_columns_and_rows() -> None:
    df = history_to_frame(_history())
    assert list(df.columns) == TELEMETRY_COLUMNS
    assert len(df) == 5
    assert df["fusion_rate"].tolist() == [0, 1, 2, 3, 4]
    assert df["total_energy_mev"].is_monotonic_increasing


def test_empty_history_gives_empty_frame() -> None:
    df = history_to_frame([])
    assert df.empty
    assert list(df.columns) == TELEMETRY_COLUMNS


def test_export_csv_round_trip(tmp_path) -> None:
    path = export_csv(_history(), tmp_path / "out" / "telemetry.csv")
    df = pd.read_csv(path)
    assert len(df) == 5
    assert df["particle_count"].tolist() == [60, 58, 56, 54, 52]


def test_plot_telemetry_writes_png(tmp_path) -> None:
    path = plot_telemetry(_history(), tmp_path / "report.png")
    assert path.exists()
    assert path.read_bytes()[:8] == b"\x89PNG\r\n\x1a\n"
