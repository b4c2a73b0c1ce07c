# ──────────────────────────────────────────────────────────────────────
# FusionFlow Core — Control Module
# © 1998–2026 Miroslav Šotek. All rights reserved.
# Contact: www.anulum.li | protoscience@anulum.li
# ORCID: https://orcid.org/0009-0009-3560-0851
# License: GNU AGPL v3 | Commercial licensing available
# ──────────────────────────────────────────────────────────────────────
from .advisory import (
    AdvisoryAction,
    AdvisoryError,
    AdvisoryParameters,
    AdvisoryRequest,
    Advisor,
    RuleBasedAdvisor,
    parse_advisory_payload,
)
from .episode_controller import ControllerSnapshot, ControllerState, EpisodeController

# gymnasium is only imported when the RL surface is used
_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "FusionFlowEnv": (".gym_fusion_env", "FusionFlowEnv"),
    "register_env": (".gym_fusion_env", "register"),
}


def __getattr__(name: str):
    if name in _LAZY_IMPORTS:
        module_path, attr = _LAZY_IMPORTS[name]
        import importlib
        mod = importlib.import_module(module_path, __name__)
        val = getattr(mod, attr)
        globals()[name] = val
        return val
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "AdvisoryAction",
    "AdvisoryError",
    "AdvisoryParameters",
    "AdvisoryRequest",
    "Advisor",
    "ControllerSnapshot",
    "ControllerState",
    "EpisodeController",
    "FusionFlowEnv",
    "parse_advisory_payload",
    "register_env",
    "RuleBasedAdvisor",
]
