"""Startup sequence of the hole bot.

The bot never polls without its state store and its resolved channel
surfaces. Steps that guard those carry the error class a failure is reported
as; every other step is optional and only logs a warning. Failures that are
already ``HoleError`` instances keep their own type and message, anything
else (an unwritable state directory, a broken socket) is wrapped so that the
CLI can report it and exit instead of printing a traceback.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional

from ...core.exceptions import HoleError
from ...core.logging_utils import log_event

StartupAction = Callable[[], Awaitable[None]]


@dataclass(frozen=True)
class StartupStep:
    name: str
    action: StartupAction
    fatal_as: Optional[type[HoleError]] = None

    @property
    def required(self) -> bool:
        return self.fatal_as is not None


async def run_startup(
    steps: Iterable[StartupStep], *, logger: logging.Logger
) -> list[str]:
    """Run ``steps`` in order and return the names of skipped optional steps."""
    skipped: list[str] = []
    for step in steps:
        try:
            await step.action()
        except Exception as exc:
            log_event(
                logger,
                logging.ERROR if step.required else logging.WARNING,
                "telehole.startup.step_failed",
                step=step.name,
                required=step.required,
                exc=exc,
            )
            if step.fatal_as is None:
                skipped.append(step.name)
                continue
            if isinstance(exc, HoleError):
                raise
            raise step.fatal_as(
                f"startup step {step.name!r} failed: {exc}",
                user_message=f"Cannot start: {step.name} failed ({exc})",
            ) from exc
        log_event(logger, logging.DEBUG, "telehole.startup.step_ok", step=step.name)
    if skipped:
        log_event(logger, logging.WARNING, "telehole.startup.degraded", skipped=skipped)
    return skipped
