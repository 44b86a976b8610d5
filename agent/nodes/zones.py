"""
resolve_zones and select_strategy nodes.

resolve_zones   — fetch the managed zone list once per run (journaled).
select_strategy — pure decision, recomputed freely on replay.
"""
from __future__ import annotations

import logging

from agent.errors import step_guard
from agent.runtime import IssuanceRuntime
from agent.state import IssuanceState
from agent.strategy import select_challenge_type

logger = logging.getLogger(__name__)


@step_guard("resolve_zones")
def resolve_zones(state: IssuanceState, runtime: IssuanceRuntime) -> dict:
    zones = runtime.call("get_zones")
    return {"zones": list(zones or [])}


@step_guard("select_strategy")
def select_strategy(state: IssuanceState, runtime: IssuanceRuntime) -> dict:
    dns_names = state["request"]["dns_names"]
    challenge_type = select_challenge_type(dns_names, state["zones"])
    if not runtime.journal.is_replaying:
        logger.info(
            "%s: using %s for %s", runtime.instance_id, challenge_type, ", ".join(dns_names)
        )
    return {"challenge_type": challenge_type}
