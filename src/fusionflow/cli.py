# ──────────────────────────────────────────────────────────────────────
# FusionFlow Core — Headless Episode CLI
# © 1998–2026 Miroslav Šotek. All rights reserved.
# Contact: www.anulum.li | protoscience@anulum.li
# ORCID: https://orcid.org/0009-0009-3560-0851
# License: GNU AGPL v3 | Commercial licensing available
# ──────────────────────────────────────────────────────────────────────
from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError

from fusionflow.control.advisory import RuleBasedAdvisor
from fusionflow.control.episode_controller import EpisodeController
from fusionflow.core.config_schema import EngineConfig, load_config
from fusionflow.core.constants import PhysicsMode, ReactionMode
from fusionflow.io.logging_config import setup_fusion_logging
from fusionflow.io.run_archive import InMemoryRunArchive, JsonlRunArchive, RunArchive

LOGGER = logging.getLogger("fusionflow.cli")
DEFAULT_TICKS = 1200


def _configure_logging(level: str, json_logs: bool) -> None:
    setup_fusion_logging(
        level=getattr(logging, level.upper(), logging.INFO),
        json_output=json_logs,
    )


def _build_config(
    config_path: Optional[Path],
    seed: Optional[int],
    overrides: dict,
) -> EngineConfig:
    try:
        config = load_config(config_path) if config_path is not None else EngineConfig()
    except (OSError, ValueError) as exc:
        raise click.ClickException(f"Cannot load config {config_path}: {exc}") from exc

    if seed is not None:
        config.seed = seed
    settings = config.settings
    for name, value in overrides.items():
        if value is not None:
            setattr(settings, name, value)
    return config


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--ticks", default=DEFAULT_TICKS, show_default=True, type=click.IntRange(min=0), help="Physics ticks to run.")
@click.option("--seed", type=int, default=None, help="Seed for a reproducible episode.")
@click.option("--temperature", type=float, default=None, help="Plasma temperature (clamped to 10-300).")
@click.option("--confinement", type=float, default=None, help="Confinement strength (clamped to 0.1-1.5).")
@click.option(
    "--reaction-mode",
    type=click.Choice([m.value for m in ReactionMode]),
    default=None,
    help="Fusion channel set.",
)
@click.option(
    "--physics-mode",
    type=click.Choice([m.value for m in PhysicsMode]),
    default=None,
    help="Force model.",
)
@click.option("--particles", type=int, default=None, help="Initial particle count (clamped to 20-150).")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="JSON engine configuration file.",
)
@click.option(
    "--advisor-every",
    type=click.IntRange(min=0),
    default=0,
    show_default=True,
    help="Consult the rule-based advisor every N ticks (0 disables).",
)
@click.option(
    "--archive",
    "archive_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Append the episode summary to this JSON-lines archive.",
)
@click.option("--export-csv", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Write telemetry history as CSV.")
@click.option("--plot", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Write a PNG telemetry report.")
@click.option(
    "--log-level",
    default="WARNING",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level.",
)
@click.option("--json-logs/--plain-logs", default=False, show_default=True, help="Structured JSON log output.")
def cli(
    ticks: int,
    seed: Optional[int],
    temperature: Optional[float],
    confinement: Optional[float],
    reaction_mode: Optional[str],
    physics_mode: Optional[str],
    particles: Optional[int],
    config_path: Optional[Path],
    advisor_every: int,
    archive_path: Optional[Path],
    export_csv: Optional[Path],
    plot: Optional[Path],
    log_level: str,
    json_logs: bool,
) -> None:
    """Run one headless FusionFlow episode and print its summary as JSON."""
    _configure_logging(log_level, json_logs)
    try:
        config = _build_config(
            config_path,
            seed,
            {
                "temperature": temperature,
                "confinement": confinement,
                "reaction_mode": reaction_mode,
                "physics_mode": physics_mode,
                "initial_particle_count": particles,
            },
        )
    except ValidationError as exc:
        raise click.ClickException(f"Invalid configuration: {exc}") from exc

    archive: RunArchive = JsonlRunArchive(archive_path) if archive_path is not None else InMemoryRunArchive()
    controller = EpisodeController(config, archive=archive)
    advisor = RuleBasedAdvisor() if advisor_every > 0 else None
    LOGGER.info(
        "Running %d ticks: %s",
        ticks,
        json.dumps(controller.settings.model_dump(mode="json"), sort_keys=True),
    )

    controller.run(ticks, advisor=advisor, advise_every=advisor_every)
    if controller.stop() is None and controller.last_summary is None:
        # nothing ticked; summarise the idle episode without archiving
        summary = controller.build_summary("stopped")
    else:
        summary = controller.last_summary

    if export_csv is not None:
        from fusionflow.io.telemetry_export import export_csv as write_csv

        write_csv(controller.last_history, export_csv)
    if plot is not None:
        from fusionflow.io.telemetry_export import plot_telemetry

        plot_telemetry(controller.last_history, plot)

    click.echo(json.dumps(summary.model_dump(mode="json"), indent=2, sort_keys=True))


def main() -> int:
    try:
        cli.main(standalone_mode=False)
    except click.ClickException as exc:
        exc.show()
        return exc.exit_code
    except SystemExit as exc:
        code = exc.code if isinstance(exc.code, int) else 1
        return code
    return 0


if __name__ == "__main__":
    sys.exit(main())
