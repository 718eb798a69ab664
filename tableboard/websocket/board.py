from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from tableboard.services.board import TableBoard
from tableboard.timeutil import to_iso

LOGGER = logging.getLogger("table-board")


def board_payload(board: TableBoard) -> Dict[str, Any]:
    return {
        "type": "board",
        "tables": [t.model_dump(mode="json") for t in board.tables()],
        "reservations": [
            {**r.model_dump(mode="json"), "time": to_iso(r.time)} for r in board.reservations()
        ],
    }


class BoardWebSocketManager:
    """Pushes a board snapshot to every connected screen after each local change.

    A single sender task delivers snapshots in order; changes that arrive
    while a send is in flight collapse into the latest snapshot.
    """

    def __init__(self) -> None:
        self._connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self._board: Optional[TableBoard] = None
        self._latest: Optional[Dict[str, Any]] = None
        self._wakeup = asyncio.Event()
        self._sender: Optional[asyncio.Task] = None

    def attach(self, board: TableBoard) -> None:
        self._board = board
        board.add_listener(self._on_board_change)

    def detach(self) -> None:
        if self._board is not None:
            self._board.remove_listener(self._on_board_change)
            self._board = None

    async def close(self) -> None:
        self.detach()
        if self._sender is not None:
            self._sender.cancel()
            try:
                await self._sender
            except asyncio.CancelledError:
                pass
            self._sender = None

    def _on_board_change(self, board: TableBoard) -> None:
        if not self._connections:
            return
        self._latest = board_payload(board)
        self._wakeup.set()
        if self._sender is None or self._sender.done():
            self._sender = asyncio.get_running_loop().create_task(self._send_latest(), name="board-ws-sender")

    async def _send_latest(self) -> None:
        while True:
            await self._wakeup.wait()
            self._wakeup.clear()
            payload, self._latest = self._latest, None
            if payload is not None:
                await self.broadcast(payload)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections.add(websocket)
        if self._board is not None:
            await websocket.send_json(board_payload(self._board))

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            if websocket in self._connections:
                self._connections.remove(websocket)

    async def broadcast(self, payload: Dict[str, Any]) -> None:
        async with self._lock:
            connections = list(self._connections)

        for ws in connections:
            try:
                await ws.send_json(payload)
            except Exception as exc:
                LOGGER.debug("Dropping board websocket: %s", exc)
                await self.disconnect(ws)


board_ws_manager = BoardWebSocketManager()


def register_board_websocket(app: FastAPI) -> None:
    """Register /ws/board websocket endpoint."""

    @app.websocket("/ws/board")
    async def board_websocket(websocket: WebSocket) -> None:
        await board_ws_manager.connect(websocket)
        try:
            while True:
                # Keep connection alive; client payloads are ignored.
                try:
                    await asyncio.wait_for(websocket.receive_text(), timeout=30)
                except asyncio.TimeoutError:
                    await websocket.send_json({"type": "ping"})
        except WebSocketDisconnect:
            await board_ws_manager.disconnect(websocket)
        except Exception:
            await board_ws_manager.disconnect(websocket)
