from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field
import uvicorn

from .config import CONTROL_API_HOST, CONTROL_API_PORT
from .executor import available_keys
from .session import SessionController, SessionUnavailableError
from .logui import info


class SimulateRequest(BaseModel):
    text: str
    confidence: float = Field(0.95, ge=0.0, le=1.0)


class CommandRequest(BaseModel):
    phrase: str
    action: str
    description: str = ""
    priority: int = 2


class ExecuteRequest(BaseModel):
    action: str


class SettingsUpdate(BaseModel):
    confidence_threshold: float | None = None
    trainer_mode: bool | None = None
    rate_limit_ms: int | None = None
    max_queue_size: int | None = None
    test_mode: bool | None = None
    key_press_delay_ms: int | None = None


def create_app(session: SessionController) -> FastAPI:
    app = FastAPI(title="VoxRide Control API (Local)")

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/status")
    def status():
        return session.status()

    # ------------------- Commands -------------------
    @app.get("/commands")
    def commands():
        return {
            "commands": [c.to_dict() for c in session.registry.lookup()],
            "keys": available_keys(),
        }

    @app.post("/commands")
    def add_command(req: CommandRequest):
        try:
            cmd = session.add_command(req.phrase, req.action, req.description, req.priority)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return cmd.to_dict()

    @app.delete("/commands/{phrase}")
    def remove_command(phrase: str):
        if not session.remove_command(phrase):
            raise HTTPException(status_code=404, detail=f"No command for phrase: {phrase}")
        return {"removed": phrase}

    # ------------------- History / queue -------------------
    @app.get("/history")
    def history():
        return {"history": session.history(), "recognitions": session.recognition_log()}

    @app.delete("/history")
    def clear_history():
        session.dispatcher.clear_history()
        return {"cleared": True}

    @app.get("/queue")
    def queue():
        return {**session.dispatcher.queue_status(), "pending": session.dispatcher.pending()}

    # ------------------- Settings -------------------
    @app.get("/settings")
    def get_settings():
        return session.settings.to_dict()

    @app.post("/settings")
    def update_settings(req: SettingsUpdate):
        if req.confidence_threshold is not None:
            session.set_threshold(req.confidence_threshold)
        if req.trainer_mode is not None:
            session.set_trainer_mode(req.trainer_mode)
        if req.rate_limit_ms is not None:
            session.set_rate_limit(req.rate_limit_ms)
        if req.max_queue_size is not None:
            session.set_max_queue_size(req.max_queue_size)
        if req.test_mode is not None:
            session.set_test_mode(req.test_mode)
        if req.key_press_delay_ms is not None:
            session.set_key_press_delay(req.key_press_delay_ms)
        return session.settings.to_dict()

    # ------------------- Actions -------------------
    @app.post("/simulate")
    async def simulate(req: SimulateRequest):
        text = (req.text or "").strip()
        if not text:
            raise HTTPException(status_code=422, detail="empty text")
        decision = await session.simulate(text, req.confidence)
        return decision.to_dict()

    @app.post("/execute")
    async def execute(req: ExecuteRequest):
        result = await session.dispatcher.test_key(req.action)
        return result.to_dict()

    @app.post("/listening/start")
    async def start_listening():
        try:
            started = await session.start()
        except SessionUnavailableError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return {"started": started, "state": session.state}

    @app.post("/listening/stop")
    async def stop_listening():
        stopped = await session.stop()
        return {"stopped": stopped, "state": session.state}

    return app


async def serve_control_api(session: SessionController, host: str = CONTROL_API_HOST, port: int = CONTROL_API_PORT):
    config = uvicorn.Config(create_app(session), host=host, port=port, log_level="warning")
    server = uvicorn.Server(config)
    info(f"Control API on http://{host}:{port}")
    await server.serve()
