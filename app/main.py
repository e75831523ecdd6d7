from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.src import schemas
from app.src.constants import API_TITLE, API_VERSION, NOTIFICATION_SCHEDULER
from app.src.scheduler import NotificationScheduler
from app.api.controller import app_admin, app_driver, app_owner
from app.api.controller import app_passenger, app_public


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = NotificationScheduler()
    app.state.scheduler = scheduler
    if NOTIFICATION_SCHEDULER == "enabled":
        scheduler.start()
    try:
        yield
    finally:
        scheduler.stop()


app = FastAPI(title=API_TITLE, version=API_VERSION, lifespan=lifespan)

origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/admin", app_admin, "Admin API")
app.mount("/driver", app_driver, "Driver API")
app.mount("/owner", app_owner, "Owner API")
app.mount("/passenger", app_passenger, "Passenger API")
app.mount("/public", app_public, "Public API")


# Health check endpoint
@app.get("/health", tags=["Health Check"], response_model=schemas.HealthStatus)
async def health_check():
    return {"status": "OK", "version": API_VERSION}
