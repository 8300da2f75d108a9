"""Tests for the management CLI."""

import pytest

from clinic_onboarding import cli, deps
from clinic_onboarding.wizard.catalog import PlanType
from clinic_onboarding.wizard.persistence import InMemoryProgressGateway
from clinic_onboarding.wizard.session import WizardSession


@pytest.mark.unit
class TestCatalogCommand:

    def test_single_plan(self, capsys):
        cli.show_catalog("clinic")
        out = capsys.readouterr().out
        assert out.splitlines() == [
            "clinic:",
            "  1. clinic   overview, contact, legal, schedule",
        ]

    def test_all_plans(self, capsys):
        cli.show_catalog()
        out = capsys.readouterr().out
        assert "company:" in out and "complex:" in out and "clinic:" in out


@pytest.mark.unit
@pytest.mark.asyncio
class TestProgressCommands:
    """Runs against the in-memory progress backend set up in conftest."""

    async def _seed(self, attempt_id: str):
        session = WizardSession(attempt_id, InMemoryProgressGateway(attempt_id, deps._memory_store))
        await session.select_plan(PlanType.COMPLEX)

    async def test_show_progress(self, capsys):
        await self._seed("cli-1")
        await cli.show_progress("cli-1")
        out = capsys.readouterr().out
        assert '"plan_type": "complex"' in out

    async def test_show_missing(self, capsys):
        await cli.show_progress("cli-missing")
        assert "No progress stored for cli-missing" in capsys.readouterr().out

    async def test_clear_progress(self, capsys):
        await self._seed("cli-2")
        await cli.clear_progress("cli-2")
        assert "cli-2" not in deps._memory_store
        assert "Cleared progress for cli-2" in capsys.readouterr().out
