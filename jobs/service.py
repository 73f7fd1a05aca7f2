from __future__ import annotations

import asyncio


async def run_ownership_cleanup(*, registry, max_age_seconds: int) -> int:
    removed = await registry.cleanup(max_age_seconds)
    remaining = await registry.count()
    print(f"[Maintenance] ownership cleanup removed={removed} remaining={remaining}")
    return removed


async def maintenance_loop(
    *,
    registry,
    max_age_seconds: int,
    interval_seconds: int = 3600,
) -> None:
    while True:
        await asyncio.sleep(max(60, int(interval_seconds)))
        try:
            await run_ownership_cleanup(registry=registry, max_age_seconds=max_age_seconds)
        except Exception as e:
            print(f"[Maintenance] loop error: {e}")
