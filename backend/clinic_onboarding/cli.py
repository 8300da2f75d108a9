"""Management CLI for onboarding progress.

Usage:
    python -m clinic_onboarding.cli catalog [plan]           # Show the step table
    python -m clinic_onboarding.cli show-progress <attempt>  # Print stored progress
    python -m clinic_onboarding.cli clear-progress <attempt> # Delete stored progress
"""

import asyncio
import json
import sys

from clinic_onboarding.config import settings
from clinic_onboarding.database import engine
from clinic_onboarding.deps import get_gateway
from clinic_onboarding.utils.cache import close_redis
from clinic_onboarding.wizard import catalog
from clinic_onboarding.wizard.catalog import PlanType
from clinic_onboarding.wizard.session import WizardSession


def show_catalog(plan: str | None = None):
    plans = [PlanType(plan)] if plan else list(PlanType)
    for plan_type in plans:
        print(f"{plan_type.value}:")
        for step in catalog.get_steps(plan_type):
            print(f"  {step.id}. {step.name.value:<8} {', '.join(step.sub_steps)}")


async def _open(attempt_id: str) -> WizardSession:
    session = WizardSession(attempt_id, await get_gateway(attempt_id))
    await session.open()
    return session


async def _close():
    await close_redis()
    await engine.dispose()


async def show_progress(attempt_id: str):
    try:
        session = await _open(attempt_id)
        if not session.state.has_plan:
            print(f"No progress stored for {attempt_id} ({settings.progress_backend})")
            return
        print(json.dumps(session.progress_summary().model_dump(mode="json"), indent=2))
    finally:
        await _close()


async def clear_progress(attempt_id: str):
    try:
        session = await _open(attempt_id)
        await session.reset()
        print(f"Cleared progress for {attempt_id}")
    finally:
        await _close()


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    arg = sys.argv[2] if len(sys.argv) > 2 else None
    if cmd == "catalog":
        show_catalog(arg)
    elif cmd == "show-progress" and arg:
        asyncio.run(show_progress(arg))
    elif cmd == "clear-progress" and arg:
        asyncio.run(clear_progress(arg))
    else:
        print("Usage: python -m clinic_onboarding.cli [catalog [plan]|show-progress <attempt>|clear-progress <attempt>]")
