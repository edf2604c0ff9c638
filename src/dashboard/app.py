#!/usr/bin/env python3
"""Pipeline Pulse -- FastAPI app serving pipeline history and stat trends.

Run with:
    python3 -m uvicorn src.dashboard.app:app --host 127.0.0.1 --port 8765
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.dashboard.routes import router as pipeline_router

app = FastAPI(title="Pipeline Pulse", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(pipeline_router)


@app.get("/api/health")
async def api_health() -> JSONResponse:
    return JSONResponse({"ok": True, "service": "pipeline-pulse"})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "src.dashboard.app:app",
        host="127.0.0.1",
        port=8765,
        reload=False,
        log_level="info",
    )
