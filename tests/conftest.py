"""
Shared pytest fixtures.

FakeActivities
--------------
An in-process IssuanceActivities that records every call as
(method_name, args) and plays a scripted CA: order status at creation,
status after finalize, propagation delay, and per-method failure queues.

FakeClock
---------
A virtual clock: ``sleep`` advances ``now`` instantly and remembers the
requested duration, so timer behaviour is asserted without real waiting.
"""
from __future__ import annotations

from pathlib import Path

import pytest

from activities.interface import ActivityError, IssuanceActivities
from agent.graph import run_issuance
from config import Settings
from storage.history import InMemoryHistoryStore

START_TIME = 1_700_000_000.0
EXPIRES_ON = "2027-01-17T00:00:00+00:00"


class SimulatedCrash(BaseException):
    """Stands in for the process dying; never recorded by the journal."""


class FakeClock:
    def __init__(self, start: float = START_TIME) -> None:
        self.current = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.current

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += seconds


class FakeActivities(IssuanceActivities):
    """
    Args:
        zones:               returned by get_zones
        order_status:        status of the order at creation
        finalize_status:     status returned by finalize_order
        propagation_seconds: second element returned by dns01_authorization
        ready_statuses:      successive statuses returned by check_is_ready
                             (defaults to "ready" once exhausted)
        valid_statuses:      same, for check_is_valid
        failures:            {method: [exception_or_None, ...]} consumed one
                             entry per call; None means succeed that time
        result_count_delta:  add/remove challenge results to break the
                             one-result-per-authorization rule
    """

    def __init__(
        self,
        zones=None,
        order_status: str = "pending",
        finalize_status: str = "valid",
        propagation_seconds=10,
        ready_statuses=None,
        valid_statuses=None,
        failures=None,
        result_count_delta: int = 0,
    ) -> None:
        self.zones = list(zones or [])
        self.order_status = order_status
        self.finalize_status = finalize_status
        self.propagation_seconds = propagation_seconds
        self.ready_statuses = list(ready_statuses or [])
        self.valid_statuses = list(valid_statuses or [])
        self.failures = {k: list(v) for k, v in (failures or {}).items()}
        self.result_count_delta = result_count_delta
        self.calls: list[tuple] = []
        self.dns_names: list[str] = []

    # ── helpers ───────────────────────────────────────────────────────────

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, args))
        queue = self.failures.get(name)
        if queue:
            exc = queue.pop(0)
            if exc is not None:
                raise exc

    @property
    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def _results(self, authorizations, kind: str) -> list[dict]:
        results = []
        for i, authz in enumerate(authorizations):
            token = f"token-{i}"
            results.append({
                "dns_name": self.dns_names[i] if i < len(self.dns_names) else f"name-{i}",
                "authorization_url": authz,
                "challenge_url": f"https://ca.test/chall/{kind}/{i}",
                "token": token,
                "value": f"{token}.thumbprint",
            })
        if self.result_count_delta < 0:
            return results[: self.result_count_delta]
        return results + results[: self.result_count_delta]

    # ── IssuanceActivities ────────────────────────────────────────────────

    def get_zones(self):
        self._record("get_zones")
        return list(self.zones)

    def dns01_precondition(self, dns_names):
        self._record("dns01_precondition", dns_names)

    def http01_precondition(self, dns_names):
        self._record("http01_precondition", dns_names)

    def order(self, dns_names):
        self._record("order", dns_names)
        self.dns_names = list(dns_names)
        return {
            "order_url": "https://ca.test/order/1",
            "status": self.order_status,
            "authorizations": [f"https://ca.test/authz/{i}" for i in range(len(dns_names))],
            "finalize_url": "https://ca.test/order/1/finalize",
            "certificate_url": None,
        }

    def dns01_authorization(self, authorizations):
        self._record("dns01_authorization", authorizations)
        return self._results(authorizations, "dns"), self.propagation_seconds

    def http01_authorization(self, authorizations):
        self._record("http01_authorization", authorizations)
        return self._results(authorizations, "http")

    def check_dns_challenge(self, challenge_results):
        self._record("check_dns_challenge", challenge_results)

    def check_http_challenge(self, challenge_results):
        self._record("check_http_challenge", challenge_results)

    def answer_challenges(self, challenge_results):
        self._record("answer_challenges", challenge_results)

    def check_is_ready(self, order, challenge_results):
        self._record("check_is_ready", order, challenge_results)
        status = self.ready_statuses.pop(0) if self.ready_statuses else "ready"
        return {**order, "status": status}

    def cleanup_dns_challenge(self, challenge_results):
        self._record("cleanup_dns_challenge", challenge_results)

    def cleanup_http_challenge(self, challenge_results):
        self._record("cleanup_http_challenge", challenge_results)

    def finalize_order(self, request, order):
        self._record("finalize_order", request, order)
        return {**order, "status": self.finalize_status}

    def check_is_valid(self, order):
        self._record("check_is_valid", order)
        status = self.valid_statuses.pop(0) if self.valid_statuses else "valid"
        return {**order, "status": status, "certificate_url": "https://ca.test/cert/1"}

    def merge_certificate(self, certificate_name, order):
        self._record("merge_certificate", certificate_name, order)
        return {"name": certificate_name, "expires_on": EXPIRES_ON, "dns_names": self.dns_names}

    def send_completed_event(self, certificate_name, expires_on, dns_names):
        self._record("send_completed_event", certificate_name, expires_on, dns_names)


def transient(detail: str = "not yet") -> ActivityError:
    return ActivityError(detail, retryable=True)


def fake_activities_factory(settings) -> FakeActivities:
    """CLI factory: HTTP-01 path, no timers."""
    return FakeActivities(zones=[])


# ─── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        DNS_PROPAGATION_DEFAULT_SECONDS=10,
        DNS_PROPAGATION_MAX_SECONDS=600,
        CHALLENGE_CHECK_TIMEOUT_SECONDS=300,
        ORDER_READY_TIMEOUT_SECONDS=60,
        ORDER_VALID_TIMEOUT_SECONDS=60,
        POLL_INITIAL_DELAY_SECONDS=5,
        POLL_MAX_DELAY_SECONDS=30,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store() -> InMemoryHistoryStore:
    return InMemoryHistoryStore()


@pytest.fixture()
def issue(store, clock, test_settings):
    """Run one instance against the shared store/clock/settings."""

    def _issue(request, activities, instance_id: str = "test-instance", **kwargs):
        return run_issuance(
            request,
            activities,
            store=kwargs.pop("store", store),
            instance_id=instance_id,
            clock=kwargs.pop("clock", clock),
            settings=kwargs.pop("settings", test_settings),
            **kwargs,
        )

    return _issue


@pytest.fixture()
def history_dir(tmp_path: Path) -> Path:
    d = tmp_path / "history"
    d.mkdir()
    return d
