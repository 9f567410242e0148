from __future__ import annotations

import logging

import pytest

from abuseguard.main import app, lifespan
from abuseguard.settings import settings


@pytest.mark.asyncio
async def test_lifespan_warns_when_workers_are_disabled(monkeypatch, caplog) -> None:
    monkeypatch.setattr(settings, "abuse_workers_enabled", False)
    caplog.set_level(logging.WARNING, logger="abuseguard.main")

    async with lifespan(app):
        pass

    messages = [record.getMessage() for record in caplog.records if record.name == "abuseguard.main"]
    assert any("abuse workers disabled" in message for message in messages)
