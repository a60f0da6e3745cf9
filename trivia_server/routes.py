from fastapi import APIRouter, Request, Response

router = APIRouter()


@router.get("/")
def root(request: Request):
    """Liveness probe with the number of open rooms."""
    return {"status": "Quiz Game Backend Running", "rooms": len(request.app.state.store)}


@router.get("/api/health/cors")
def cors_health(request: Request, response: Response):
    """Echo the caller's origin next to the configured allow-list."""
    response.headers["Cache-Control"] = "no-store"
    return {
        "ok": True,
        "origin": request.headers.get("origin"),
        "allowlist": request.app.state.settings.cors_origins,
        "corsApplied": True,
    }
