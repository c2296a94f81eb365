"""
Client IP extraction.

Behind a proxy or load balancer the peer address is the proxy, so the
forwarding headers are consulted first.
"""
from typing import Optional

from fastapi import Request


def get_client_ip(request: Request) -> Optional[str]:
    """
    Real client IP of a request.

    Headers checked in order:
    1. X-Forwarded-For (first entry of "client, proxy1, proxy2")
    2. X-Real-IP (nginx)
    3. CF-Connecting-IP (Cloudflare)
    4. request.client.host (direct connection)

    Security:
        Only trust these headers when the proxy strips client supplied
        copies of them.
    """
    x_forwarded_for = request.headers.get("X-Forwarded-For")
    if x_forwarded_for:
        client_ip = x_forwarded_for.split(",")[0].strip()
        if client_ip:
            return client_ip

    x_real_ip = request.headers.get("X-Real-IP")
    if x_real_ip:
        return x_real_ip.strip()

    cf_connecting_ip = request.headers.get("CF-Connecting-IP")
    if cf_connecting_ip:
        return cf_connecting_ip.strip()

    if request.client:
        return request.client.host

    return None
