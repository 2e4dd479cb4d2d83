"""Entry normalization per warninglist comparison type."""

import ipaddress
import logging
from typing import Iterable, Optional, Union

import validators

from warninglist.models import ComparisonType

logger = logging.getLogger("warninglist.normalizer")

# Set-backed types are looked up by membership, ordered types are scanned
NormalizedEntrySet = Union[frozenset[str], tuple[str, ...]]

IPV4_MAX_PREFIX = 32
IPV6_MAX_PREFIX = 128


def normalize_cidr(raw: str) -> Optional[str]:
    """
    Canonicalize a CIDR entry.

    A bare address gets the maximum prefix (/32 or /128). Host bits are
    cleared, so "10.1.0.0/8" is stored as "10.0.0.0/8".

    Returns:
        "address/prefix" string, or None if the address or prefix is invalid
    """
    address, _, prefix = raw.strip().lower().partition("/")

    if validators.ipv4(address):
        max_prefix = IPV4_MAX_PREFIX
    elif validators.ipv6(address):
        max_prefix = IPV6_MAX_PREFIX
    else:
        return None

    if not prefix:
        bits = max_prefix
    elif prefix.isdigit() and int(prefix) <= max_prefix:
        bits = int(prefix)
    else:
        return None

    try:
        return str(ipaddress.ip_network(f"{address}/{bits}", strict=False))
    except ValueError:
        return None


def normalize_hostname(raw: str) -> str:
    return raw.strip().strip(".").lower()


def normalize(
    comparison_type: Optional[ComparisonType], raw_values: Iterable[str]
) -> NormalizedEntrySet:
    """
    Transform raw list values into a comparison-ready entry set.

    Args:
        comparison_type: The list's comparison type
        raw_values: Entries as stored for the list

    Returns:
        frozenset for string, hostname and cidr lists; an ordered tuple for
        substring and regex lists. Malformed entries are dropped.
    """
    if comparison_type is ComparisonType.HOSTNAME:
        return frozenset(h for h in (normalize_hostname(v) for v in raw_values) if h)

    if comparison_type is ComparisonType.STRING:
        return frozenset(v for v in raw_values if v)

    if comparison_type is ComparisonType.CIDR:
        output: set[str] = set()
        for value in raw_values:
            cidr = normalize_cidr(value)
            if cidr is None:
                logger.debug(f"Dropping invalid CIDR entry: {value!r}")
                continue
            output.add(cidr)
        return frozenset(output)

    # Substring, regex and unknown types keep storage order; duplicates
    # are collapsed so the first occurrence wins.
    seen: dict[str, None] = {}
    for value in raw_values:
        trimmed = value.strip()
        if trimmed:
            seen.setdefault(trimmed, None)
    return tuple(seen)
