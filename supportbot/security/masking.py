"""Origin metadata scrubbing for stored threat records."""

import ipaddress
import re
from typing import Optional

_IPV4_RE = re.compile(r"\b(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})\b")
_HEX_RUN_RE = re.compile(r"\b[0-9a-fA-F]{8,}\b")

USER_AGENT_MAX_LENGTH = 200


def mask_ip(ip: Optional[str]) -> Optional[str]:
    """
    Hide the host part of an address.

    IPv4 keeps the first three octets (``10.1.2.*``); IPv6 keeps the first
    four groups (``2001:db8:0:1::*``). Anything unparseable becomes ``unknown``.
    """
    if not ip:
        return None
    candidate = ip.strip()
    try:
        addr = ipaddress.ip_address(candidate)
    except ValueError:
        return "unknown"
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped
    if isinstance(addr, ipaddress.IPv4Address):
        octets = str(addr).split(".")
        return ".".join(octets[:3] + ["*"])
    groups = addr.exploded.split(":")[:4]
    return ":".join(g.lstrip("0") or "0" for g in groups) + "::*"


def sanitize_user_agent(user_agent: Optional[str]) -> Optional[str]:
    if not user_agent:
        return None
    cleaned = _IPV4_RE.sub(lambda m: f"{m.group(1)}.{m.group(2)}.{m.group(3)}.*", user_agent)
    cleaned = _HEX_RUN_RE.sub("***", cleaned)
    return cleaned[:USER_AGENT_MAX_LENGTH]
