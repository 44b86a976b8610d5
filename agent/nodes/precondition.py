"""
precondition node — ask the collaborator whether the chosen challenge type
can work for every requested name before any CA state is created.
"""
from __future__ import annotations

from agent.errors import step_guard
from agent.runtime import IssuanceRuntime
from agent.state import IssuanceState
from agent.strategy import DNS01


@step_guard("precondition")
def precondition(state: IssuanceState, runtime: IssuanceRuntime) -> dict:
    dns_names = state["request"]["dns_names"]
    if state["challenge_type"] == DNS01:
        runtime.call("dns01_precondition", dns_names)
    else:
        runtime.call("http01_precondition", dns_names)
    return {}
