"""Background loop firing scheduled checks for every active business."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime

from orbit.core.config import Settings
from orbit.core.logging import configure_logging
from orbit.core.triggers import ingest_trigger
from orbit.core.types import AgentResponse
from orbit.examples.scenarios import due_checks, scheduled_check_example
from orbit.lifecycle.agent import OrbitAgent
from orbit.lifecycle.factory import build_agent

logger = logging.getLogger(__name__)


async def run_scheduled_checks(
    agent: OrbitAgent,
    checks: list[str],
) -> dict[str, list[AgentResponse]]:
    """Run each check through ``process()`` for every active business."""
    business_ids = await agent.capabilities.profiles.list_active_business_ids()
    responses: dict[str, list[AgentResponse]] = {}
    for check in checks:
        for business_id in business_ids:
            trigger = ingest_trigger(scheduled_check_example(check, business_id))
            response = await agent.process(trigger)
            responses.setdefault(check, []).append(response)
            logger.info(
                "scheduled_check_done check=%s business_id=%s success=%s actions=%s",
                check,
                business_id,
                response.success,
                len(response.actions),
            )
    return responses


async def run_loop(
    agent: OrbitAgent,
    *,
    iterations: int | None = None,
    interval_s: float = 60.0,
    clock: Callable[[], datetime] = lambda: datetime.now(UTC),
) -> int:
    """Poll the schedule; each hour's checks fire at most once. Returns checks fired.

    Only the current hour's fired checks are remembered.
    """
    fired: set[tuple[str, str]] = set()
    count = 0
    iteration = 0
    while iterations is None or iteration < iterations:
        now = clock()
        slot = now.strftime("%Y-%m-%dT%H")
        fired = {entry for entry in fired if entry[0] == slot}
        pending = [check for check in due_checks(now) if (slot, check) not in fired]
        if pending:
            await run_scheduled_checks(agent, pending)
            fired.update((slot, check) for check in pending)
            count += len(pending)
        iteration += 1
        if iterations is None or iteration < iterations:
            await asyncio.sleep(interval_s)
    return count


async def main() -> None:
    settings = Settings()
    configure_logging(settings.log_level)
    agent = build_agent(settings)
    await agent.start()
    try:
        await run_loop(agent, interval_s=settings.worker_interval_s)
    finally:
        await agent.stop()


if __name__ == "__main__":
    asyncio.run(main())
