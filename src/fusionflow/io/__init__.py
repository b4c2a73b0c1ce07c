# ──────────────────────────────────────────────────────────────────────
# FusionFlow Core — IO Package Init
# © 1998–2026 Miroslav Šotek. All rights reserved.
# Contact: www.anulum.li | protoscience@anulum.li
# ORCID: https://orcid.org/0009-0009-3560-0851
# License: GNU AGPL v3 | Commercial licensing available
# ──────────────────────────────────────────────────────────────────────
"""Logging setup, episode archives and telemetry export."""

from .logging_config import FusionJSONFormatter, setup_fusion_logging
from .run_archive import (
    EpisodeSummary,
    InMemoryRunArchive,
    JsonlRunArchive,
    RunArchive,
    classify_outcome,
    composite_score,
)
from .telemetry_export import export_csv, history_to_frame, plot_telemetry

__all__ = [
    "classify_outcome",
    "composite_score",
    "EpisodeSummary",
    "export_csv",
    "FusionJSONFormatter",
    "history_to_frame",
    "InMemoryRunArchive",
    "JsonlRunArchive",
    "plot_telemetry",
    "RunArchive",
    "setup_fusion_logging",
]
