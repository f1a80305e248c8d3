"""
IP Utilities

Client IP extraction used as the rate limiting key.

Security:
- Validates trusted proxies before trusting X-Forwarded-For
- Prevents IP spoofing attacks for rate limiting bypass
"""
import os
import ipaddress
import logging
from typing import List
from fastapi import Request

logger = logging.getLogger(__name__)


def _get_trusted_proxies() -> List[str]:
    """
    Get list of trusted proxy IPs/CIDRs.

    Returns:
        List of trusted proxy IP addresses or CIDR ranges
    """
    env_proxies = os.environ.get("TRUSTED_PROXIES", "")
    if env_proxies:
        return [p.strip() for p in env_proxies.split(",") if p.strip()]

    # Loopback only by default; configure TRUSTED_PROXIES behind a load balancer
    return ["127.0.0.1", "::1"]


def _is_trusted_proxy(ip: str) -> bool:
    """Check if an IP address is from a trusted proxy."""
    if not ip:
        return False

    try:
        client_addr = ipaddress.ip_address(ip)
    except ValueError:
        return False

    for proxy in _get_trusted_proxies():
        try:
            if "/" in proxy:
                if client_addr in ipaddress.ip_network(proxy, strict=False):
                    return True
            elif client_addr == ipaddress.ip_address(proxy):
                return True
        except ValueError:
            continue
    return False


def get_client_ip(request: Request) -> str:
    """
    Extract client IP from request with security validation.

    Only trusts X-Forwarded-For when the direct peer is a trusted proxy,
    and then returns the first address in the chain that is not a proxy.

    Args:
        request: FastAPI Request object

    Returns:
        Client IP address string
    """
    direct_ip = request.client.host if request.client else None

    if direct_ip and _is_trusted_proxy(direct_ip):
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            # X-Forwarded-For format: "client, proxy1, proxy2"
            ips = [ip.strip() for ip in forwarded_for.split(",")]
            for ip in ips:
                if ip and not _is_trusted_proxy(ip):
                    return ip
            if ips and ips[0]:
                return ips[0]

    if direct_ip:
        return direct_ip

    return "unknown"
