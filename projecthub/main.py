from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from projecthub.config import settings
from projecthub.core.logging import setup_logging
from projecthub.routes.project_routes import router as project_router

setup_logging()

app = FastAPI(
    title="ProjectHub API",
    description="Shared project plans with owner/editor/viewer roles and realtime change propagation.",
    version="0.1.0",
)

allowed_origins = [o.strip() for o in settings.ALLOWED_ORIGINS.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/", tags=["health"])
def healthcheck():
    return {"status": "ok", "service": "projecthub", "version": "0.1.0", "store": settings.STORE_BACKEND}

app.include_router(project_router)
