"""
Structured logging for bootstrap events.

Every state transition of a run is logged as one line on the
``snesdev.events`` logger, either as JSON (for log shippers) or as a short
human-readable message (console). Module loggers elsewhere in the package
use plain ``logging.getLogger(__name__)``.

Logged events:
- run.started
- run.resumed
- step.started
- step.completed
- step.failed
- step.skipped
- step.stale
- run.finished

Usage:
    from snesdev.logger import BootstrapLogger

    events = BootstrapLogger(project="my-snes-game", install_prefix="/opt/pvsneslib")
    events.step_started("install_sdk", "Download and install PVSnesLib SDK")
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

__all__ = ["EVENTS_LOGGER_NAME", "BootstrapLogger", "configure_logging"]

EVENTS_LOGGER_NAME = "snesdev.events"

_events_logger = logging.getLogger(EVENTS_LOGGER_NAME)

_TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(level: str = "info", fmt: str = "text") -> None:
    """
    Configure the ``snesdev`` logger hierarchy for CLI use.

    Logs go to stderr so stdout stays reserved for the report.

    Args:
        level: debug, info, warning or error
        fmt: "json" emits bare JSON event lines, "text" adds timestamps
    """
    root = logging.getLogger("snesdev")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    if fmt == "json":
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT, datefmt="%H:%M:%S"))
    root.addHandler(handler)

    BootstrapLogger.json_output = fmt == "json"


class BootstrapLogger:
    """
    Structured logger for one bootstrap run.

    Each entry carries the project and install prefix so runs against
    different targets can be told apart in aggregated logs.
    """

    json_output: bool = False

    def __init__(
        self,
        project: str,
        install_prefix: str,
        service_name: str = "snesdev",
        json_output: Optional[bool] = None,
    ):
        self.project = project
        self.install_prefix = install_prefix
        self.service_name = service_name
        if json_output is not None:
            self.json_output = json_output
        self._logger = _events_logger

    def _emit(
        self,
        event: str,
        message: str,
        level: int = logging.INFO,
        step: Optional[str] = None,
        **extra_fields: Any,
    ) -> None:
        if not self._logger.isEnabledFor(level):
            return

        if not self.json_output:
            self._logger.log(level, message)
            return

        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": logging.getLevelName(level).lower(),
            "event": event,
            "service": self.service_name,
            "project": self.project,
            "install_prefix": self.install_prefix,
        }
        if step:
            entry["step"] = step
        entry.update({k: v for k, v in extra_fields.items() if v is not None})
        entry["message"] = message

        self._logger.log(level, json.dumps(entry, default=str))

    def run_started(self, total_steps: int, force_reinstall: bool) -> None:
        self._emit(
            "run.started",
            f"Bootstrapping {self.project} into {self.install_prefix} ({total_steps} steps)",
            total_steps=total_steps,
            force_reinstall=force_reinstall,
        )

    def run_resumed(self, completed_steps: int, last_updated: Optional[str]) -> None:
        self._emit(
            "run.resumed",
            f"Resuming from previous bootstrap attempt ({completed_steps} steps already done)",
            completed_steps=completed_steps,
            last_updated=last_updated,
        )

    def step_started(self, step: str, description: str) -> None:
        self._emit("step.started", f"{description}...", step=step)

    def step_completed(self, step: str, description: str, duration_seconds: float) -> None:
        self._emit(
            "step.completed",
            f"{description} completed",
            step=step,
            duration_seconds=round(duration_seconds, 3),
        )

    def step_skipped(self, step: str, description: str, reason: str) -> None:
        self._emit("step.skipped", f"Skipping {description} ({reason})", step=step, reason=reason)

    def step_stale(self, step: str, description: str) -> None:
        self._emit(
            "step.stale",
            f"{description} was recorded complete but is no longer satisfied; running again",
            level=logging.WARNING,
            step=step,
        )

    def step_failed(self, step: str, description: str, error: str, required: bool) -> None:
        suffix = "" if required else "; continuing despite optional step failure"
        self._emit(
            "step.failed",
            f"{description} failed: {error}{suffix}",
            level=logging.ERROR if required else logging.WARNING,
            step=step,
            error=error,
            required=required,
        )

    def run_finished(self, status: str, completed: int, total: int, elapsed_seconds: float) -> None:
        self._emit(
            "run.finished",
            f"Bootstrap {status}: {completed}/{total} steps completed",
            level=logging.INFO if status == "succeeded" else logging.ERROR,
            status=status,
            completed_steps=completed,
            total_steps=total,
            elapsed_seconds=round(elapsed_seconds, 3),
        )
