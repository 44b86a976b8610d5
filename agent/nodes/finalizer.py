"""
finalize_order, wait_until_valid and merge_certificate nodes.

finalize_order    — submit the CSR (built by the collaborator from the request)
wait_until_valid  — only entered when finalize did not return ``valid``
merge_certificate — download the chain into the secret store
"""
from __future__ import annotations

import logging

from agent.errors import OrchestrationError, step_guard
from agent.nodes.order import ensure_progress, order_reached
from agent.runtime import IssuanceRuntime
from agent.state import IssuanceState
from agent.waits import poll_until

logger = logging.getLogger(__name__)


@step_guard("finalize_order")
def finalize_order(state: IssuanceState, runtime: IssuanceRuntime) -> dict:
    previous = state["order"]
    order = ensure_progress(
        "finalize_order", previous, runtime.call("finalize_order", state["request"], previous)
    )
    return {"order": order}


@step_guard("wait_until_valid")
def wait_until_valid(state: IssuanceState, runtime: IssuanceRuntime) -> dict:
    order = state["order"]
    valid_order = poll_until(
        runtime,
        "wait_until_valid",
        "check_is_valid",
        order,
        timeout=runtime.bounds["ORDER_VALID_TIMEOUT_SECONDS"],
        done=order_reached("wait_until_valid", order, "valid"),
    )
    return {"order": valid_order}


@step_guard("merge_certificate")
def merge_certificate(state: IssuanceState, runtime: IssuanceRuntime) -> dict:
    request = state["request"]
    replaying = runtime.journal.is_replaying
    certificate = runtime.call("merge_certificate", request["certificate_name"], state["order"])
    if not certificate or not certificate.get("name"):
        raise OrchestrationError("merge_certificate", "secret store returned no certificate")

    if not replaying:
        logger.info(
            "%s: stored certificate %s (expires %s)",
            runtime.instance_id,
            certificate["name"],
            certificate.get("expires_on", "?"),
        )
    return {"certificate": certificate}
