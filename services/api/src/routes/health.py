from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def route_health(request: Request):
    store = getattr(request.app.state, "store", None)
    ready = bool(store is not None and getattr(store, "is_open", False))
    return {"status": "ok" if ready else "starting", "backend": request.app.state.registry_conf.backend}
