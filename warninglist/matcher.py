"""Containment tests for each warninglist comparison type."""

import ipaddress
import logging
import math
import re
import struct
from functools import lru_cache
from typing import Callable, Optional

from warninglist.models import ComparisonType
from warninglist.normalizer import IPV4_MAX_PREFIX, IPV6_MAX_PREFIX, NormalizedEntrySet

logger = logging.getLogger("warninglist.matcher")

# PCRE style delimiters accepted around regex entries, e.g. "/^evil\.com$/i"
_PATTERN_DELIMITERS = "/#~%@!"
_PATTERN_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
    "u": 0,
}


def _split_prefix(value: str) -> tuple[str, Optional[str]]:
    if "/" in value:
        address, prefix = value.split("/", 1)
        return address, prefix
    return value, None


@lru_cache(maxsize=4096)
def _ipv6_words(address: str) -> Optional[tuple[int, ...]]:
    try:
        return struct.unpack("!8H", ipaddress.IPv6Address(address).packed)
    except ValueError:
        return None


def _ipv6_in_cidr(words: tuple[int, ...], cidr: str) -> bool:
    """Compare an IPv6 address against a CIDR one 16-bit group at a time."""
    network, _, netmask = cidr.partition("/")
    network_words = _ipv6_words(network)
    if network_words is None or not netmask.isdigit():
        return False
    bits = int(netmask)

    for i in range(math.ceil(bits / 16)):
        left = min(bits - 16 * i, 16)
        mask = ~(0xFFFF >> left) & 0xFFFF
        if network_words[i] & mask != words[i] & mask:
            return False
    return True


def eval_cidr(entries: NormalizedEntrySet, value: str) -> Optional[str]:
    """
    Find the most specific list CIDR that contains the value.

    A value carrying its own prefix only matches list entries that are at
    most as specific, i.e. networks that contain the whole queried range.
    """
    address, prefix = _split_prefix(value)
    if prefix is not None and not prefix.isdigit():
        return None

    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return None

    if ip.version == 4:
        max_bits = min(int(prefix), IPV4_MAX_PREFIX) if prefix is not None else IPV4_MAX_PREFIX
        ip_int = int(ip)
        # /0 would match everything, so it is never generated
        for bits in range(max_bits, 0, -1):
            mask = (0xFFFFFFFF << (IPV4_MAX_PREFIX - bits)) & 0xFFFFFFFF
            needle = f"{ipaddress.IPv4Address(ip_int & mask)}/{bits}"
            if needle in entries:
                return needle
        return None

    max_bits = min(int(prefix), IPV6_MAX_PREFIX) if prefix is not None else IPV6_MAX_PREFIX
    words = _ipv6_words(address)
    if words is None:
        return None

    best: Optional[str] = None
    best_bits = -1
    for cidr in entries:
        # IPv4 networks never contain a colon
        if ":" not in cidr:
            continue
        bits = int(cidr.rpartition("/")[2])
        if bits > max_bits or bits <= best_bits:
            continue
        if _ipv6_in_cidr(words, cidr):
            best, best_bits = cidr, bits
    return best


def eval_string(entries: NormalizedEntrySet, value: str) -> Optional[str]:
    return value if value in entries else None


def eval_substring(entries: NormalizedEntrySet, value: str) -> Optional[str]:
    for entry in entries:
        if entry in value:
            return entry
    return None


def extract_hostname(value: str) -> Optional[str]:
    """
    Pull the hostname out of a hostname, domain or URL value.

    Without "//" the first path segment is the hostname, otherwise the
    segment after "scheme://". A trailing numeric port is dropped.
    """
    segments = value.split("/")
    if "//" in value:
        if len(segments) < 3:
            return None
        hostname = segments[2]
    else:
        hostname = segments[0]

    host, sep, port = hostname.rpartition(":")
    if sep and port.isdigit() and ":" not in host:
        hostname = host

    hostname = hostname.rstrip(".").lower()
    return hostname or None


def eval_hostname(entries: NormalizedEntrySet, value: str) -> Optional[str]:
    """Match the shortest suffix of the hostname that is in the list."""
    hostname = extract_hostname(value)
    if hostname is None:
        return None

    labels = hostname.split(".")
    for start in range(len(labels) - 1, -1, -1):
        candidate = ".".join(labels[start:])
        if candidate in entries:
            return candidate
    return None


@lru_cache(maxsize=2048)
def compile_pattern(pattern: str) -> Optional[re.Pattern]:
    """Compile a list regex, accepting PCRE delimiters and trailing flags."""
    body, flags = pattern, 0
    if len(pattern) > 2 and pattern[0] in _PATTERN_DELIMITERS:
        end = pattern.rfind(pattern[0])
        modifiers = pattern[end + 1:]
        if end > 0 and all(m in _PATTERN_FLAGS for m in modifiers):
            body = pattern[1:end]
            for modifier in modifiers:
                flags |= _PATTERN_FLAGS[modifier]

    try:
        return re.compile(body, flags)
    except re.error as e:
        logger.debug(f"Ignoring invalid regex entry {pattern!r}: {e}")
        return None


def eval_regex(entries: NormalizedEntrySet, value: str) -> Optional[str]:
    for entry in entries:
        compiled = compile_pattern(entry)
        if compiled is not None and compiled.search(value):
            return entry
    return None


# Registry of evaluators per comparison type
EVALUATORS: dict[ComparisonType, Callable[[NormalizedEntrySet, str], Optional[str]]] = {
    ComparisonType.STRING: eval_string,
    ComparisonType.SUBSTRING: eval_substring,
    ComparisonType.CIDR: eval_cidr,
    ComparisonType.HOSTNAME: eval_hostname,
    ComparisonType.REGEX: eval_regex,
}


def split_value(value: str, indicator_type: str) -> list[str]:
    """Split composite values ("malware-sample", "ip-dst|port", ...) on the first "|"."""
    if indicator_type == "malware-sample" or "|" in indicator_type:
        return value.split("|", 1)
    return [value]


def check_value(
    entries: NormalizedEntrySet,
    value: str,
    indicator_type: str,
    comparison_type: Optional[ComparisonType],
) -> Optional[tuple[str, str]]:
    """
    Check a value against one list's normalized entries.

    Args:
        entries: Normalized entries of the list
        value: Indicator value
        indicator_type: Indicator type, decides composite splitting
        comparison_type: The list's comparison type (None if unknown)

    Returns:
        (matched list entry, value part that matched), or None
    """
    evaluator = EVALUATORS.get(comparison_type) if comparison_type else None
    if evaluator is None:
        return None

    for part in split_value(value, indicator_type):
        if not part:
            continue
        matched = evaluator(entries, part)
        if matched is not None:
            return matched, part
    return None


def quick_check_value(
    entries: NormalizedEntrySet, value: str, comparison_type: Optional[ComparisonType]
) -> bool:
    """Boolean check of a single value, without composite splitting."""
    return check_value(entries, value, "", comparison_type) is not None
