"""FastAPI shell exposing sessions to browsers over a WebSocket."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, Literal, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import Settings
from .deck import BOARD_SIZES
from .document import SessionStatus, decode
from .errors import MemoryMatchError
from .events import GameEvent
from .opponent import DIFFICULTIES
from .session import ROOMS, SessionManager
from .store import InMemoryDocumentStore

logger = logging.getLogger(__name__)

SETTINGS = Settings.from_env()
STORE = InMemoryDocumentStore()
app = FastAPI(title="Memory Match", description="Two-player matching pairs over a shared store")


IntentType = Literal[
    "createSession",
    "joinSession",
    "leaveSession",
    "setBoardSize",
    "setReady",
    "startGame",
    "flip",
    "rematch",
    "returnToLobby",
    "startSolo",
    "startScripted",
]


class IntentMessage(BaseModel):
    """One player intent received over the socket."""

    model_config = ConfigDict(populate_by_name=True)

    type: IntentType
    code: Optional[str] = Field(default=None, pattern=r"^\d{5}$")
    index: Optional[int] = Field(default=None, ge=0)
    board_size: Optional[int] = Field(default=None, alias="boardSize")
    difficulty: Optional[str] = None
    ready: bool = True

    @field_validator("board_size")
    @classmethod
    def ensure_supported_board(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value not in BOARD_SIZES:
            raise ValueError(
                f"Unsupported board size {value}. "
                f"Choose one of {', '.join(map(str, BOARD_SIZES))}."
            )
        return value

    @field_validator("difficulty")
    @classmethod
    def ensure_supported_difficulty(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and value not in DIFFICULTIES:
            raise ValueError(
                f"Unsupported difficulty {value!r}. "
                f"Choose one of {', '.join(DIFFICULTIES)}."
            )
        return value


@app.get("/api/health")
async def health() -> Dict[str, object]:
    return {"status": "ok", "storeAvailable": STORE.available}


@app.get("/api/room/{code}")
async def inspect_room(code: str) -> Dict[str, object]:
    try:
        document = decode(await STORE.read(f"{ROOMS}/{code.strip()}"))
    except MemoryMatchError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if document is None:
        raise HTTPException(status_code=404, detail="Room not found")
    available = document.guest is None and document.status is SessionStatus.WAITING
    return {
        "roomId": code.strip(),
        "status": document.status.value,
        "boardSize": document.board_size,
        "available": available,
        "availableSlots": ["guest"] if available else [],
    }


async def _dispatch(manager: SessionManager, intent: IntentMessage) -> Optional[Dict[str, Any]]:
    """Run one intent; returns an acknowledgement to send back, if any."""
    kind = intent.type
    if kind == "createSession":
        code = await manager.create_session()
        return {"type": "sessionCreated", "code": code, "role": "host"}
    if kind == "joinSession":
        if intent.code is None:
            raise ValueError("joinSession requires a code")
        await manager.join_session(intent.code)
        return {"type": "sessionJoined", "code": intent.code, "role": "guest"}
    if kind == "leaveSession":
        await manager.leave_session()
        return {"type": "sessionLeft"}
    if kind == "setBoardSize":
        if intent.board_size is None:
            raise ValueError("setBoardSize requires a boardSize")
        await manager.set_board_size(intent.board_size)
    elif kind == "setReady":
        await manager.set_ready(intent.ready)
    elif kind == "startGame":
        await manager.start_game(intent.board_size)
    elif kind == "flip":
        if intent.index is None:
            raise ValueError("flip requires an index")
        accepted = await manager.flip(intent.index)
        return {"type": "flipResult", "index": intent.index, "accepted": accepted}
    elif kind == "rematch":
        await manager.request_rematch()
    elif kind == "returnToLobby":
        await manager.request_return_to_lobby()
    elif kind == "startSolo":
        await manager.start_solo(intent.board_size)
    elif kind == "startScripted":
        await manager.start_scripted(intent.board_size, intent.difficulty)
    return None


@app.websocket("/ws/play")
async def play(websocket: WebSocket) -> None:
    await websocket.accept()
    client_id = uuid.uuid4().hex
    manager = SessionManager(STORE, SETTINGS, client_id=client_id)
    outbox: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()

    def forward(event: GameEvent) -> None:
        outbox.put_nowait({"type": "event", "event": event.to_dict()})

    async def pump() -> None:
        while True:
            message = await outbox.get()
            await websocket.send_json(message)

    unsubscribe = manager.events.subscribe(forward)
    sender = asyncio.create_task(pump(), name=f"outbox-{client_id}")
    outbox.put_nowait({"type": "hello", "clientId": client_id})
    logger.info("[ws-open] client=%s", client_id)

    try:
        while True:
            payload = await websocket.receive_json()
            try:
                intent = IntentMessage.model_validate(payload)
            except ValidationError as exc:
                outbox.put_nowait({"type": "error", "error": "ValidationError", "message": str(exc)})
                continue
            try:
                ack = await _dispatch(manager, intent)
            except MemoryMatchError as exc:
                logger.info("[intent-rejected] client=%s type=%s error=%s", client_id, intent.type, exc)
                outbox.put_nowait({"type": "error", **exc.to_dict()})
            except ValueError as exc:
                outbox.put_nowait({"type": "error", "error": "ValueError", "message": str(exc)})
            else:
                if ack is not None:
                    outbox.put_nowait(ack)
    except WebSocketDisconnect:
        pass
    finally:
        logger.info("[ws-close] client=%s", client_id)
        unsubscribe()
        sender.cancel()
        manager.close()
        await STORE.disconnect(client_id)
