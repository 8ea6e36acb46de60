import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv

load_dotenv()  # load .env from safeguard_backend/ (or current working directory)

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core import config, services
from core.errors import (
    InvalidTransitionError,
    LocationRequiredError,
    NoReachableContactError,
    NotFoundError,
    PermissionDeniedError,
    SafeGuardError,
    StoreError,
)
from routers import classify, contacts, emergency, incidents, sensors

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("safeguard")

if config.AI_API_KEY:
    logger.info("AI_API_KEY loaded (model risk classification enabled)")
else:
    logger.warning("AI_API_KEY not set; risk classification will use the rule-based fallback")


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await services.shutdown()


app = FastAPI(title="SafeGuard Accident Alert API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sensors.router)
app.include_router(emergency.router)
app.include_router(classify.router)
app.include_router(contacts.router)
app.include_router(incidents.router)

_STATUS_BY_ERROR = {
    LocationRequiredError: 400,
    NoReachableContactError: 400,
    PermissionDeniedError: 403,
    NotFoundError: 404,
    InvalidTransitionError: 409,
    StoreError: 502,
}


@app.exception_handler(SafeGuardError)
async def safeguard_error_handler(request: Request, exc: SafeGuardError) -> JSONResponse:
    status = next((code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)), 500)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


@app.get("/health")
async def health_check() -> dict:
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
