import logging
import uuid

from fastapi import FastAPI
from starlette.requests import Request
from starlette.responses import Response

from .routers.admin import router as admin_router
from .routers.clients import router as clients_router
from .routers.cron import router as cron_router
from .routers.health import router as health_router
from .settings import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="PostCadence API", version="0.1.0")


@app.middleware("http")
async def request_id_middleware(request: Request, call_next) -> Response:  # type: ignore[override]
    request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-Id"] = request_id
    return response


app.include_router(health_router)
app.include_router(cron_router)
app.include_router(clients_router)
app.include_router(admin_router)

logger.info("PostCadence API configured (env=%s, pipeline=%s)", settings.app_env, settings.pipeline_mode)
