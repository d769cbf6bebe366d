from __future__ import annotations

import logging

import pytest

from telehole.core.exceptions import ConfigError, StoreError
from telehole.integrations.telegram.startup import StartupStep, run_startup

LOGGER = logging.getLogger("tests.startup")


@pytest.mark.anyio
async def test_optional_failure_is_skipped_and_later_steps_run() -> None:
    ran: list[str] = []

    async def broken() -> None:
        raise RuntimeError("menu rejected")

    async def record() -> None:
        ran.append("store")

    skipped = await run_startup(
        (
            StartupStep("register_commands", broken),
            StartupStep("store", record, StoreError),
        ),
        logger=LOGGER,
    )

    assert skipped == ["register_commands"]
    assert ran == ["store"]


@pytest.mark.anyio
async def test_required_failure_is_wrapped_and_stops_startup() -> None:
    ran: list[str] = []

    async def unwritable() -> None:
        raise PermissionError("state directory is read-only")

    async def record() -> None:
        ran.append("surfaces")

    with pytest.raises(StoreError) as info:
        await run_startup(
            (
                StartupStep("initialize_store", unwritable, StoreError),
                StartupStep("resolve_surfaces", record, ConfigError),
            ),
            logger=LOGGER,
        )

    assert isinstance(info.value.__cause__, PermissionError)
    assert "initialize_store" in info.value.describe()
    assert ran == []


@pytest.mark.anyio
async def test_required_hole_error_keeps_its_type() -> None:
    async def no_channel() -> None:
        raise ConfigError("@holes is not a channel")

    with pytest.raises(ConfigError, match="not a channel"):
        await run_startup(
            (StartupStep("resolve_surfaces", no_channel, StoreError),),
            logger=LOGGER,
        )
