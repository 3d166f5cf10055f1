"""
FastAPI Web Application for the AI DJ

Endpoints:
  GET    /api/status                  - Current block, applied signature, tuning, loop health
  GET    /api/logs                    - Process log (newest first)

  GET    /api/schedule                - Current schedule
  PUT    /api/schedule                - Replace the schedule
  DELETE /api/schedule/{index}        - Remove one block
  POST   /api/schedule/generate       - Natural language -> schedule (Claude)

  POST   /api/dj/tick                 - Run one reconciliation tick now
  POST   /api/token                   - Swap the Spotify access token

  GET    /api/player                  - Playback state
  GET    /api/queue                   - Upcoming queue (first 20 tracks)
  GET    /api/devices                 - Available playback devices
  PUT    /api/devices/{device_id}     - Pin a device and transfer playback to it
  POST   /api/player/{command}        - next | previous | pause | resume
"""

import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel

from .ai_integration import ScheduleAI
from .config import DJConfig
from .engine import DJEngine
from .errors import DJError, ScheduleCompileError
from .runner import DJLoopRunner
from .store import STATE_PATH, StateStore

PLAYER_COMMANDS = ("next", "previous", "pause", "resume")
QUEUE_PREVIEW = 20


# ---------------------------------------------------------------------------
# Engine construction
# ---------------------------------------------------------------------------

def build_engine_from_env() -> DJEngine:
    token = os.environ.get("SPOTIFY_ACCESS_TOKEN", "")
    if not token:
        logger.warning("No SPOTIFY_ACCESS_TOKEN set. Post one to /api/token before playback.")

    compiler = ScheduleAI()
    if compiler.enabled:
        logger.info("Claude API key found. Schedule generation enabled.")
    else:
        logger.warning("No ANTHROPIC_API_KEY set. Schedule generation disabled.")

    store = StateStore(Path(os.environ.get("DJ_STATE_PATH", str(STATE_PATH))))
    return DJEngine.create(
        token,
        config=DJConfig.from_env(),
        compiler=compiler,
        store=store,
    )


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class ScheduleBody(BaseModel):
    schedule: List[Dict[str, Any]]


class GenerateBody(BaseModel):
    request: str
    personal_preference: Optional[str] = None
    apply_now: bool = True


class TokenBody(BaseModel):
    access_token: str


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(engine: Optional[DJEngine] = None, start_loop: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app_instance: FastAPI):
        dj = engine or build_engine_from_env()
        runner = DJLoopRunner(dj)
        app_instance.state.engine = dj
        app_instance.state.runner = runner
        if start_loop:
            runner.start()
        logger.info(f"AI DJ ready. {len(dj.schedule)} schedule blocks loaded.")

        yield

        await runner.stop()
        await dj.dispose()

    app = FastAPI(title="AI DJ", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _engine(request: Request) -> DJEngine:
        return request.app.state.engine

    # -----------------------------------------------------------------------
    # Routes: Status
    # -----------------------------------------------------------------------

    @app.get("/api/status")
    async def status(request: Request):
        dj = _engine(request)
        runner: DJLoopRunner = request.app.state.runner
        payload = dj.get_status().model_dump(mode="json", by_alias=True)
        payload["loop"] = {
            "running": runner.running,
            "ticks": runner.ticks,
            "last_error": runner.last_error,
        }
        return JSONResponse(payload)

    @app.get("/api/logs")
    async def logs(request: Request):
        return {"logs": _engine(request).get_process_log()}

    # -----------------------------------------------------------------------
    # Routes: Schedule
    # -----------------------------------------------------------------------

    @app.get("/api/schedule")
    async def get_schedule(request: Request):
        return {"schedule": _engine(request).schedule.to_payload()}

    @app.put("/api/schedule")
    async def put_schedule(body: ScheduleBody, request: Request):
        dj = _engine(request)
        dj.set_schedule(body.schedule)
        return {"schedule": dj.schedule.to_payload()}

    @app.delete("/api/schedule/{index}")
    async def delete_schedule_item(index: int, request: Request):
        dj = _engine(request)
        if not 0 <= index < len(dj.schedule):
            raise HTTPException(status_code=404, detail=f"No schedule block at index {index}")
        dj.remove_schedule_item(index)
        return {"schedule": dj.schedule.to_payload()}

    @app.post("/api/schedule/generate")
    async def generate_schedule(body: GenerateBody, request: Request):
        dj = _engine(request)
        try:
            items = await dj.create_schedule(body.request, body.personal_preference)
        except ScheduleCompileError as e:
            raise HTTPException(status_code=503, detail=str(e))

        result: Dict[str, Any] = {"schedule": [i.to_payload() for i in items]}
        if not items:
            result["warning"] = "The AI returned no usable schedule blocks. Try rephrasing."
            return result

        if body.apply_now:
            try:
                await dj.tick()
            except DJError as e:
                result["playback_error"] = str(e)
        return result

    # -----------------------------------------------------------------------
    # Routes: Loop control
    # -----------------------------------------------------------------------

    @app.post("/api/dj/tick")
    async def tick(request: Request):
        dj = _engine(request)
        try:
            await dj.tick()
        except DJError as e:
            raise HTTPException(status_code=502, detail=str(e))
        return {"current_query": dj.last_query}

    @app.post("/api/token")
    async def update_token(body: TokenBody, request: Request):
        _engine(request).update_access_token(body.access_token)
        return {"ok": True}

    # -----------------------------------------------------------------------
    # Routes: Player
    # -----------------------------------------------------------------------

    @app.get("/api/player")
    async def player_state(request: Request):
        state = await _engine(request).get_playback_state()
        return {"state": state.model_dump(mode="json") if state else None}

    @app.get("/api/queue")
    async def queue(request: Request):
        tracks = await _engine(request).get_queue()
        return {"queue": [t.model_dump(mode="json") for t in tracks[:QUEUE_PREVIEW]]}

    @app.get("/api/devices")
    async def devices(request: Request):
        found = await _engine(request).get_devices()
        return {"devices": [d.model_dump(mode="json") for d in found]}

    @app.put("/api/devices/{device_id}")
    async def set_device(device_id: str, request: Request):
        await _engine(request).set_active_device(device_id)
        return {"device_id": device_id}

    @app.post("/api/player/{command}")
    async def player_command(command: str, request: Request):
        if command not in PLAYER_COMMANDS:
            raise HTTPException(status_code=404, detail=f"Unknown command: {command}")
        await getattr(_engine(request), command)()
        return {"ok": True}

    return app


app = create_app()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    port = int(os.environ.get("DJ_PORT", "8888"))
    logger.info(f"Starting AI DJ on port {port}")
    uvicorn.run(
        "ai_dj.app:app",
        host="0.0.0.0",
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    main()
