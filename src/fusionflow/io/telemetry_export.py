# ──────────────────────────────────────────────────────────────────────
# FusionFlow Core — Telemetry Export
# © 1998–2026 Miroslav Šotek. All rights reserved.
# Contact: www.anulum.li | protoscience@anulum.li
# ORCID: https://orcid.org/0009-0009-3560-0851
# License: GNU AGPL v3 | Commercial licensing available
# ──────────────────────────────────────────────────────────────────────
"""Tabular and graphical export of the telemetry history."""

from __future__ import annotations

import logging
from dataclasses import fields
from pathlib import Path
from typing import Iterable

import pandas as pd

from fusionflow.core.telemetry import TelemetrySnapshot

logger = logging.getLogger(__name__)

TELEMETRY_COLUMNS = [f.name for f in fields(TelemetrySnapshot)]


def history_to_frame(history: Iterable[TelemetrySnapshot]) -> pd.DataFrame:
    """One row per snapshot, columns in snapshot field order."""
    rows = [snap.to_dict() for snap in history]
    if not rows:
        return pd.DataFrame(columns=TELEMETRY_COLUMNS)
    return pd.DataFrame(rows, columns=TELEMETRY_COLUMNS)


def export_csv(history: Iterable[TelemetrySnapshot], path: str | Path) -> Path:
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df = history_to_frame(history)
    df.to_csv(output_path, index=False)
    logger.info("Wrote %d telemetry rows to %s", len(df), output_path)
    return output_path


def plot_telemetry(
    history: Iterable[TelemetrySnapshot],
    filename: str | Path = "telemetry_report.png",
    *,
    dpi: int = 120,
) -> Path:
    """Render Q-factor, fusion rate and wall integrity against time to a PNG."""
    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    output_path = Path(filename)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df = history_to_frame(history)

    fig, axes = plt.subplots(3, 1, figsize=(8.0, 7.5), dpi=dpi, sharex=True)
    axes[0].plot(df["timestamp"], df["q_factor"], "b-")
    axes[0].set_ylabel("Q")
    axes[1].step(df["timestamp"], df["fusion_rate"], "r-", where="post")
    axes[1].set_ylabel("Fusions / window")
    axes[2].plot(df["timestamp"], df["wall_integrity"], "k-")
    axes[2].set_ylabel("Wall integrity (%)")
    axes[2].set_xlabel("Simulated time (s)")
    axes[0].set_title("FusionFlow telemetry")
    fig.tight_layout()
    fig.savefig(output_path)
    plt.close(fig)
    logger.info("Saved telemetry report: %s", output_path)
    return output_path
