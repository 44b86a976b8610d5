"""
Collaborator contract for the certificate-issuance orchestrator.

The orchestrator never talks to the CA, a DNS provider, the HTTP challenge
responder, the secret store or the webhook target directly.  It calls one
method of an ``IssuanceActivities`` implementation per side-effecting step,
always through ``ExecutionJournal.call`` so that results are recorded and
replayed instead of re-executed.

Arguments and return values must be JSON-compatible (the TypedDicts in
``agent.state`` are).  Tuples come back from the journal as lists.
"""
from __future__ import annotations

import abc
from typing import List, Optional, Tuple

from agent.state import AcmeOrder, CertificateRequest, ChallengeResult, IssuedCertificate


class ActivityError(Exception):
    """Raised by collaborators when an activity cannot complete.

    ``retryable`` marks a transient condition (record not yet resolvable,
    resource not yet reachable, CA still processing).  Bounded waits retry
    those; every other failure is terminal for the run.
    """

    def __init__(self, detail: str, *, retryable: bool = False) -> None:
        self.detail = detail
        self.retryable = retryable
        super().__init__(detail)


class ActivityFailure(Exception):
    """An activity call failed.

    Raised by the journal for live failures and again, from the recorded
    event, on replay, so the orchestrator sees the same exception either way.
    """

    def __init__(
        self,
        activity: str,
        detail: str,
        *,
        retryable: bool = False,
        error_type: str = "Exception",
    ) -> None:
        self.activity = activity
        self.detail = detail
        self.retryable = retryable
        self.error_type = error_type
        super().__init__(f"{activity} failed ({error_type}): {detail}")

    def to_event(self) -> dict:
        return {
            "type": self.error_type,
            "detail": self.detail,
            "retryable": self.retryable,
        }

    @classmethod
    def from_event(cls, activity: str, error: dict) -> "ActivityFailure":
        return cls(
            activity,
            error.get("detail", ""),
            retryable=bool(error.get("retryable", False)),
            error_type=error.get("type", "Exception"),
        )


class IssuanceActivities(abc.ABC):
    """One method per side-effecting operation of an issuance run."""

    # ── Zones & preconditions ─────────────────────────────────────────────

    @abc.abstractmethod
    def get_zones(self) -> List[str]:
        """Return the DNS zones this deployment manages programmatically."""

    @abc.abstractmethod
    def dns01_precondition(self, dns_names: List[str]) -> None:
        """Fail if DNS-01 cannot be used for these names."""

    @abc.abstractmethod
    def http01_precondition(self, dns_names: List[str]) -> None:
        """Fail if HTTP-01 cannot be used for these names."""

    # ── Orders & authorizations ───────────────────────────────────────────

    @abc.abstractmethod
    def order(self, dns_names: List[str]) -> AcmeOrder:
        """Open a new ACME order."""

    @abc.abstractmethod
    def dns01_authorization(
        self, authorizations: List[str]
    ) -> Tuple[List[ChallengeResult], Optional[int]]:
        """Publish TXT records; return results and the propagation delay in seconds."""

    @abc.abstractmethod
    def http01_authorization(self, authorizations: List[str]) -> List[ChallengeResult]:
        """Publish HTTP challenge resources."""

    @abc.abstractmethod
    def check_dns_challenge(self, challenge_results: List[ChallengeResult]) -> None:
        ...

    @abc.abstractmethod
    def check_http_challenge(self, challenge_results: List[ChallengeResult]) -> None:
        ...

    @abc.abstractmethod
    def answer_challenges(self, challenge_results: List[ChallengeResult]) -> None:
        """Tell the CA the challenges are ready to be validated."""

    @abc.abstractmethod
    def check_is_ready(
        self, order: AcmeOrder, challenge_results: List[ChallengeResult]
    ) -> AcmeOrder:
        """Return the refreshed order; raise a retryable ActivityError while pending."""

    @abc.abstractmethod
    def cleanup_dns_challenge(self, challenge_results: List[ChallengeResult]) -> None:
        ...

    @abc.abstractmethod
    def cleanup_http_challenge(self, challenge_results: List[ChallengeResult]) -> None:
        ...

    # ── Issuance ──────────────────────────────────────────────────────────

    @abc.abstractmethod
    def finalize_order(self, request: CertificateRequest, order: AcmeOrder) -> AcmeOrder:
        """Build the CSR and submit it to the order's finalize URL."""

    @abc.abstractmethod
    def check_is_valid(self, order: AcmeOrder) -> AcmeOrder:
        """Return the refreshed order; raise a retryable ActivityError while processing."""

    @abc.abstractmethod
    def merge_certificate(self, certificate_name: str, order: AcmeOrder) -> IssuedCertificate:
        """Download the chain and store it in the secret store."""

    @abc.abstractmethod
    def send_completed_event(
        self, certificate_name: str, expires_on: str, dns_names: List[str]
    ) -> None:
        ...
