"""Health check routes."""

from fastapi import APIRouter, Request, Response, status

router = APIRouter()


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns:
        Health status.
    """
    return {"status": "healthy"}


@router.get("/ready")
async def readiness_check(request: Request, response: Response) -> dict[str, str | int]:
    """Readiness check endpoint.

    Ready once the scheduler engine has loaded and armed stored entries.
    """
    engine = request.app.state.engine
    if not engine.started:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "starting"}
    return {"status": "ready", "armed": len(engine.registry)}
