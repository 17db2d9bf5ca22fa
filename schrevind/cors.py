"""CORS decisions for browser requests against an allow-list of origins."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from http import HTTPStatus


@dataclass(frozen=True)
class CorsDecision:
    """What a handler should do with a request after CORS processing.

    When ``proceed`` is false, the response has already been decided:
    ``status`` and ``body`` (if any) should be sent as they are.
    ``headers`` are to be set on the response in every case.
    """

    proceed: bool
    status: int | None = None
    body: dict | None = None
    headers: dict[str, str] = field(default_factory=dict)


def is_origin_allowed(origin: str, allowed: Iterable[str]) -> bool:
    """Tell whether ``origin`` is in ``allowed``; an empty origin never is."""
    if not origin:
        return False
    return origin in allowed


def apply_cors(method: str, origin: str | None, allowed_origins: Iterable[str]) -> CorsDecision:
    """Decide the CORS outcome of a request with ``method`` and ``origin``."""
    if not origin:
        return CorsDecision(proceed=True)

    allowed = list(allowed_origins)
    if not allowed or not is_origin_allowed(origin, allowed):
        return CorsDecision(
            proceed=False,
            status=HTTPStatus.FORBIDDEN,
            body={"success": False, "error": "origin_not_allowed"},
        )

    headers = {
        "Access-Control-Allow-Origin": origin,
        "Vary": "Origin",
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, X-Requested-With, Accept, Origin",
    }

    if method.upper() == "OPTIONS":
        return CorsDecision(proceed=False, status=HTTPStatus.NO_CONTENT, headers=headers)

    return CorsDecision(proceed=True, headers=headers)