from fastapi import FastAPI
import logging

from arena.api.routes import router
from arena.infra.redis_client import create_redis
from arena.singleton import get_scheduler, init_scheduler

app = FastAPI(title="arena", version="0.1.0")
app.include_router(router)
# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@app.on_event("startup")
async def _startup() -> None:
    # No-op if tests already initialized the scheduler around their own Redis.
    init_scheduler(r=create_redis())


@app.on_event("shutdown")
async def _shutdown() -> None:
    # Let in-flight rounds finish; loops stop re-arming.
    await get_scheduler().shutdown()


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "arena", "version": "0.1.0"}
