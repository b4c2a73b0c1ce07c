# ──────────────────────────────────────────────────────────────────────
# FusionFlow Core — Structured Logging Configuration
# © 1998–2026 Miroslav Šotek. All rights reserved.
# Contact: www.anulum.li | protoscience@anulum.li
# ORCID: https://orcid.org/0009-0009-3560-0851
# License: GNU AGPL v3 | Commercial licensing available
# ──────────────────────────────────────────────────────────────────────
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

ROOT_LOGGER_NAME = "fusionflow"


class FusionJSONFormatter(logging.Formatter):
    """
    One JSON object per record.

    The ``physics_context`` extra (a dict of simulation values attached by
    the episode controller) is passed through unchanged.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "line": record.lineno,
            "message": record.getMessage(),
        }

        context = getattr(record, "physics_context", None)
        if context is not None:
            log_data["physics_context"] = context

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_fusion_logging(
    level: int = logging.INFO,
    json_output: bool = True,
    log_file: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Configure the ``fusionflow`` logger tree and return its root.

    Existing handlers on the root are replaced, so repeated calls do not
    duplicate output.
    """
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    if json_output:
        console_handler.setFormatter(FusionJSONFormatter())
    else:
        console_handler.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s in %(module)s: %(message)s"))
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(
            FusionJSONFormatter()
            if json_output
            else logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        root_logger.addHandler(file_handler)

    root_logger.debug("Structured logging initialized", extra={"physics_context": {"json": json_output}})
    return root_logger
