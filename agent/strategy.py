"""
Challenge strategy selection.

DNS-01 is used when any name is a wildcard or falls under a zone the
deployment manages; otherwise HTTP-01.  The choice covers the whole request:
one qualifying name switches every name to DNS-01.

The zone test is a plain string suffix match, so "notexample.com" also
matches the zone "example.com".
"""
from __future__ import annotations

from typing import Iterable, Sequence

DNS01 = "dns-01"
HTTP01 = "http-01"


def requires_dns01(name: str, zones: Sequence[str]) -> bool:
    return name.startswith("*") or any(name.endswith(zone) for zone in zones)


def select_challenge_type(dns_names: Iterable[str], zones: Iterable[str]) -> str:
    """Pure and total: same inputs, same answer, no I/O."""
    zones = list(zones)
    if any(requires_dns01(name, zones) for name in dns_names):
        return DNS01
    return HTTP01
