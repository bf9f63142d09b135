import logging
from uuid import UUID

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from talkwell.core.config import settings
from talkwell.api import conditions, consultations, patients, voice
from talkwell.consultation.deps import build_consultation_deps
from talkwell.db.session import close_db, init_db
from talkwell.seed import seed_if_empty
from talkwell.ws_manager import manager

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("talkwell-backend")

app = FastAPI(title="TalkWell Backend")

# CORS (browser-safe)
if settings.CORS_ORIGINS:
    allow_origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
    allow_credentials = True
else:
    allow_origins = ["*"]
    allow_credentials = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(patients.router, prefix="/patients", tags=["patients"])
app.include_router(conditions.router, prefix="/patients", tags=["conditions"])
app.include_router(consultations.router, prefix="/patients", tags=["consultations"])
app.include_router(consultations.session_router, prefix="/consultations", tags=["voice-session"])
app.include_router(voice.router, prefix="/voice", tags=["voice"])


@app.on_event("startup")
async def on_startup():
    await init_db()
    await seed_if_empty()

    # Build consultation deps ONCE
    deps = build_consultation_deps()
    app.state.consultation_deps = deps

    # Wire into websocket manager
    manager.set_deps(deps)


@app.on_event("shutdown")
async def on_shutdown():
    await manager.shutdown()
    await close_db()


@app.websocket("/ws/consultation/{patient_id}")
async def websocket_consultation(websocket: WebSocket, patient_id: UUID):
    await manager.connect(str(patient_id), websocket)
    try:
        while True:
            data = await websocket.receive_json()
            await manager.handle_incoming_message(str(patient_id), data)
    except WebSocketDisconnect:
        await manager.disconnect(str(patient_id), websocket)
    except Exception as e:
        logger.exception("WebSocket error: %s", e)
        await manager.disconnect(str(patient_id), websocket)
