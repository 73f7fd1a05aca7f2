from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class RuntimeDeps:
    # routing
    router: Any
    to_inbound: Callable
    to_reaction: Callable


@dataclass(frozen=True)
class RuntimeBootDeps:
    recovery_window_minutes: int
    recovery_replay_delay_seconds: float
    maintenance_loop_func: Callable
