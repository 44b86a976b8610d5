"""
Challenge nodes: everything between order creation and finalize.

dns-01:  dns01_authorization → await_propagation → check_dns_challenge ─┐
http-01: http01_authorization → check_http_challenge ───────────────────┤
                                                                        ↓
                       answer_challenges → wait_until_ready → cleanup_challenge

Skipped entirely when the order is already ``ready`` at creation.
Cleanup only runs once the order is ready; a failure earlier in this chain
leaves the published records/resources in place.
"""
from __future__ import annotations

import logging

from agent.errors import ChallengeCountMismatchError, step_guard
from agent.nodes.order import order_reached
from agent.runtime import IssuanceRuntime
from agent.state import IssuanceState
from agent.strategy import DNS01
from agent.waits import poll_until, wait_for_propagation

logger = logging.getLogger(__name__)


def _check_count(step: str, state: IssuanceState, challenge_results: list) -> list:
    authorizations = state["order"]["authorizations"]
    if len(challenge_results) != len(authorizations):
        raise ChallengeCountMismatchError(
            step,
            f"{len(challenge_results)} challenge result(s) for "
            f"{len(authorizations)} authorization(s)",
        )
    return challenge_results


# ─── Authorization ────────────────────────────────────────────────────────────


@step_guard("dns01_authorization")
def dns01_authorization(state: IssuanceState, runtime: IssuanceRuntime) -> dict:
    """Publish TXT records; keep the provider's propagation delay (may be None)."""
    challenge_results, propagation_seconds = runtime.call(
        "dns01_authorization", state["order"]["authorizations"]
    )
    return {
        "challenge_results": _check_count("dns01_authorization", state, challenge_results),
        "propagation_seconds": propagation_seconds,
    }


@step_guard("http01_authorization")
def http01_authorization(state: IssuanceState, runtime: IssuanceRuntime) -> dict:
    challenge_results = runtime.call("http01_authorization", state["order"]["authorizations"])
    return {
        "challenge_results": _check_count("http01_authorization", state, challenge_results),
    }


# ─── Verification ─────────────────────────────────────────────────────────────


@step_guard("await_propagation")
def await_propagation(state: IssuanceState, runtime: IssuanceRuntime) -> dict:
    waited = wait_for_propagation(runtime, "await_propagation", state.get("propagation_seconds"))
    return {"propagation_seconds": waited}


@step_guard("check_dns_challenge")
def check_dns_challenge(state: IssuanceState, runtime: IssuanceRuntime) -> dict:
    poll_until(
        runtime,
        "check_dns_challenge",
        "check_dns_challenge",
        state["challenge_results"],
        timeout=runtime.bounds["CHALLENGE_CHECK_TIMEOUT_SECONDS"],
    )
    return {}


@step_guard("check_http_challenge")
def check_http_challenge(state: IssuanceState, runtime: IssuanceRuntime) -> dict:
    poll_until(
        runtime,
        "check_http_challenge",
        "check_http_challenge",
        state["challenge_results"],
        timeout=runtime.bounds["CHALLENGE_CHECK_TIMEOUT_SECONDS"],
    )
    return {}


# ─── Answer & cleanup ─────────────────────────────────────────────────────────


@step_guard("answer_challenges")
def answer_challenges(state: IssuanceState, runtime: IssuanceRuntime) -> dict:
    runtime.call("answer_challenges", state["challenge_results"])
    return {}


@step_guard("wait_until_ready")
def wait_until_ready(state: IssuanceState, runtime: IssuanceRuntime) -> dict:
    order = state["order"]
    ready_order = poll_until(
        runtime,
        "wait_until_ready",
        "check_is_ready",
        order,
        state["challenge_results"],
        timeout=runtime.bounds["ORDER_READY_TIMEOUT_SECONDS"],
        done=order_reached("wait_until_ready", order, "ready"),
    )
    return {"order": ready_order}


@step_guard("cleanup_challenge")
def cleanup_challenge(state: IssuanceState, runtime: IssuanceRuntime) -> dict:
    if state["challenge_type"] == DNS01:
        runtime.call("cleanup_dns_challenge", state["challenge_results"])
    else:
        runtime.call("cleanup_http_challenge", state["challenge_results"])
    return {}
