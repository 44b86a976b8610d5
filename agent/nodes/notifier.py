"""
send_completed_event node — hand the finished certificate to the webhook
collaborator.  Carries the request's DNS names, not the ones the secret
store echoed back.
"""
from __future__ import annotations

from agent.errors import step_guard
from agent.runtime import IssuanceRuntime
from agent.state import IssuanceState


@step_guard("send_completed_event")
def send_completed_event(state: IssuanceState, runtime: IssuanceRuntime) -> dict:
    certificate = state["certificate"]
    runtime.call(
        "send_completed_event",
        certificate["name"],
        certificate.get("expires_on", ""),
        state["request"]["dns_names"],
    )
    return {"completed": True}
