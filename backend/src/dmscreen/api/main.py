import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dmscreen.core.errors import CombatError
from dmscreen.db.init_db import init_db
from dmscreen.settings import settings
from dmscreen.api.routers.campaigns import router as campaigns_router
from dmscreen.api.routers.characters import router as characters_router
from dmscreen.api.routers.combat import router as combat_router
from dmscreen.api.routers.dice import router as dice_router
from dmscreen.api.routers.realtime import router as realtime_router

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(title="DM Screen Combat Tracker", lifespan=lifespan)


@app.exception_handler(CombatError)
async def combat_error_handler(request: Request, exc: CombatError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(campaigns_router)
app.include_router(characters_router)
app.include_router(combat_router)
app.include_router(realtime_router)
app.include_router(dice_router)
