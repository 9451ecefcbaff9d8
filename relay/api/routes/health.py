from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe.

    Not authenticated and not rate limited, so load balancers can poll it
    freely.
    """

    return {"status": "ok"}
