"""
State definitions for the certificate-issuance orchestrator.

Every record is a TypedDict holding only JSON-compatible values: the same
objects are written into the event history and read back on replay, so
nothing here may depend on identity or on Python-only types.

Order status progression:
  pending → ready → processing → valid
  any of them → invalid (terminal)
"""
from __future__ import annotations

from typing import List, Optional

from typing_extensions import TypedDict

ORDER_STATUSES = ("pending", "ready", "processing", "valid", "invalid")

# Forward-only rank; "invalid" is handled separately as a terminal diversion.
STATUS_RANK = {"pending": 0, "ready": 1, "processing": 2, "valid": 3}


class CertificateRequest(TypedDict):
    certificate_name: str             # Logical certificate id in the secret store
    dns_names: List[str]              # Ordered, at least one entry


class AcmeOrder(TypedDict):
    """
    One ACME order as reported by the ACME collaborator.

    authorizations lists one authorization URL per identifier, in the order
    the CA returned them; challenge results follow the same ordering.
    """
    order_url: str
    status: str                       # pending | ready | processing | valid | invalid
    authorizations: List[str]
    finalize_url: str
    certificate_url: Optional[str]    # Set once the order is valid


class ChallengeResult(TypedDict):
    dns_name: str                     # Identifier this challenge proves control of
    authorization_url: str
    challenge_url: str
    token: str
    value: str                        # TXT value (dns-01) or key authorization (http-01)


class IssuedCertificate(TypedDict):
    name: str
    expires_on: str                   # ISO-8601 UTC
    dns_names: List[str]


class IssuanceState(TypedDict):
    # ── Input ──────────────────────────────────────────────────────────────
    request: CertificateRequest

    # ── Strategy ───────────────────────────────────────────────────────────
    zones: List[str]
    challenge_type: Optional[str]     # "dns-01" | "http-01", fixed once selected

    # ── Active ACME flow ───────────────────────────────────────────────────
    order: Optional[AcmeOrder]
    challenge_results: List[ChallengeResult]
    propagation_seconds: Optional[int]

    # ── Result ─────────────────────────────────────────────────────────────
    certificate: Optional[IssuedCertificate]
    completed: bool


class IssuanceOutcome(TypedDict):
    """What a run reports upward: success, or the failed step and reason."""
    instance_id: str
    succeeded: bool
    failed_step: Optional[str]
    reason: Optional[str]
    certificate: Optional[IssuedCertificate]


def make_request(certificate_name: str, dns_names: List[str]) -> CertificateRequest:
    """Build a validated CertificateRequest."""
    if not certificate_name:
        raise ValueError("certificate_name must not be empty")
    names = [n.strip() for n in dns_names]
    if not names:
        raise ValueError("a certificate request needs at least one DNS name")
    if any(not n for n in names):
        raise ValueError("DNS names must not be empty")
    return {"certificate_name": certificate_name, "dns_names": names}
