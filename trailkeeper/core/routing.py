"""
Route precedence.

Starlette matches routes in registration order, so a parameterized route
registered before a literal one at the same position swallows it
(GET /draft-trails/{referenceCode} would answer GET /draft-trails/my-drafts).
order_routes_by_specificity makes the order a property of the paths instead
of an accident of declaration order.
"""

from typing import List, Tuple

from fastapi import APIRouter
from starlette.routing import BaseRoute


LITERAL = 0
PARAMETER = 1
END = 2


def path_segments(path: str) -> List[str]:
    return [segment for segment in path.strip("/").split("/") if segment]


def is_parameter(segment: str) -> bool:
    return segment.startswith("{") and segment.endswith("}")


def specificity_key(path: str) -> Tuple[int, ...]:
    """
    Sort key for a route path, most specific first.

    Segments are compared position by position, literals before parameters,
    and a path that ends sorts after every longer path sharing its prefix.
    For paths sharing a prefix this yields:
    exact literal tail -> literal tail with sub-resource suffix ->
    single dynamic segment.

    Example:
        /drafts/my-drafts          -> (0, 0, 2)
        /drafts/{code}/status      -> (0, 1, 0, 2)
        /drafts/{code}             -> (0, 1, 2)
    """
    kinds = tuple(PARAMETER if is_parameter(s) else LITERAL for s in path_segments(path))
    return kinds + (END,)


def _route_key(route: BaseRoute) -> Tuple[int, ...]:
    return specificity_key(getattr(route, "path", ""))


def order_routes_by_specificity(router: APIRouter) -> APIRouter:
    """
    Stable in-place reordering of router.routes by specificity_key.

    Routes with identical keys (same path, different methods) keep their
    declaration order. Returns the router for chaining.
    """
    router.routes.sort(key=_route_key)
    return router
