from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.db import async_session, engine
from app.goals.router import router as users_router
from app.goals.seeder import SeedQueue
from app.goals.service import ProfileService
from app.goals.store import PostgresProfileStore, PostgresWeightEntryStore, create_schema
from app.logging_config import configure_logging
from app.queue import create_queue

configure_logging()


def build_profile_service() -> ProfileService:
    return ProfileService(
        profiles=PostgresProfileStore(async_session),
        entries=PostgresWeightEntryStore(async_session),
        seeds=SeedQueue(create_queue()),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_schema(engine)
    yield
    await engine.dispose()


app = FastAPI(title="GoalTracker", version="0.1.0", lifespan=lifespan)
app.state.profile_service = build_profile_service()
app.include_router(users_router)


@app.get("/")
async def root() -> dict:
    return {
        "status": "ok",
        "docs": "/docs",
        "health": "/health",
        "users": {
            "create": "/users",
            "profile": "/users/{id}",
            "discard_goal": "/users/{id}/discard-goal",
            "achieve_goal": "/users/{id}/achieve-goal",
            "check_expiry": "/users/{id}/check-expiry",
            "weight_entries": "/users/{id}/weight-entries",
        },
    }


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
