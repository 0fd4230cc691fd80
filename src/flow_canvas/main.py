"""FastAPI application entry - Flow Canvas editor service."""

from . import config  # noqa: F401 - load .env on startup
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import router

app = FastAPI(
    title="Flow Canvas",
    description="Workflow graph editing with optimistic sync to a flow-definition service",
    version="0.1.0",
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(router)


@app.get("/")
async def root():
    return {"service": "flow-canvas", "docs": "/docs"}
