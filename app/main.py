from time import perf_counter

from fastapi import Depends, FastAPI, Request
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from app.api.dealerships import router as dealerships_router
from app.api.deps import require_master_admin
from app.api.health import router as health_router
from app.api.provisioning import router as provisioning_router
from app.api.signup_requests import router as signup_requests_router
from app.config import settings
from app.errors import register_error_handlers
from app.logging import configure_logging
from app.metrics import REQUEST_COUNT, REQUEST_ERRORS, REQUEST_LATENCY

configure_logging()

app = FastAPI(title=f"{settings.brand_name} Provisioning API")
register_error_handlers(app)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    started = perf_counter()
    response = await call_next(request)
    route = request.scope.get("route")
    # Label by route template so ids in the path do not explode cardinality.
    path = getattr(route, "path", None) or "unmatched"
    status = str(response.status_code)
    REQUEST_COUNT.labels(request.method, path, status).inc()
    REQUEST_LATENCY.labels(request.method, path, status).observe(perf_counter() - started)
    if response.status_code >= 500:
        REQUEST_ERRORS.labels(request.method, path, status).inc()
    return response


def _include_api_router(router, dependencies=None):
    app.include_router(router, dependencies=dependencies)
    app.include_router(router, prefix="/api/v1", dependencies=dependencies)


_include_api_router(provisioning_router, dependencies=[Depends(require_master_admin)])
_include_api_router(dealerships_router, dependencies=[Depends(require_master_admin)])
# Mixed surface: submitting is public, review routes declare the admin dependency themselves.
_include_api_router(signup_requests_router)

app.include_router(health_router)


@app.get("/metrics", dependencies=[Depends(require_master_admin)])
def metrics():
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
