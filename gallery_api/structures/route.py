"""
Route descriptor picked up by the server's router discovery.

Each module under gallery_api.routers exposes a module level ``route``:

    router = APIRouter()
    route = Route(path="/albums", router=router, position=2, middlewares=["auth"])
"""
from dataclasses import dataclass, field
from typing import Callable, List

from fastapi import APIRouter


@dataclass
class Route:
    """Mount path, registration priority and named middlewares of a router."""

    path: str
    router: APIRouter
    position: int = 0
    middlewares: List[str] = field(default_factory=list)


def public(endpoint: Callable) -> Callable:
    """
    Exempt an endpoint from its route's auth middleware.

    Must sit below the router decorator so the registered function carries
    the flag.
    """
    endpoint.auth = False
    return endpoint


def is_public(endpoint) -> bool:
    return getattr(endpoint, "auth", True) is False
