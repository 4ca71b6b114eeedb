from __future__ import annotations

import logging
import random
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, Field

from ...assets.book import open_book
from ...engine.game import Game
from ...engine.move import str_to_square
from ...engine.perft import perft as perft_nodes
from ...movesource import Difficulty, ExternalMoveSource, LocalMoveSource, MoveProvider, UCIProcess
from ...search.learning import LearningLog
from ...search.service import EngineConfig, SearchService
from .error import (
    APIError,
    exception_handler,
    http_exception_handler,
    request_validation_exception_handler,
    value_error_handler,
)
from .logging_middleware import RequestIDLoggingMiddleware
from .session import InMemorySessionStore, Session


logger = logging.getLogger(__name__)


class CreateGameRequest(BaseModel):
    fen: Optional[str] = Field(default=None, description="Start position; standard if omitted")


class CreateGameResponse(BaseModel):
    game_id: str
    fen: str


class SetPositionRequest(BaseModel):
    fen: str = Field(..., description="FEN string")


class MoveRequest(BaseModel):
    move: str = Field(..., description="Coordinate move, e.g. e2e4 or e7e8q")


class EngineMoveRequest(BaseModel):
    difficulty: str = Field(default="medium", description="easy, medium, hard or expert")


class SearchRequest(BaseModel):
    depth: Optional[int] = Field(default=None, ge=1, le=8)
    movetime_ms: Optional[int] = Field(default=None, ge=1)


class PerftRequest(BaseModel):
    fen: str
    depth: int = Field(default=1, ge=0, le=5)


class GameStateResponse(BaseModel):
    game_id: str
    fen: str
    side_to_move: str
    legal_moves: List[str]
    in_check: bool
    checkmate: bool
    stalemate: bool
    draw: bool
    last_move: Optional[str]
    move_history: List[str]


class EngineMoveResponse(BaseModel):
    move: Optional[str]
    diagnostic: Optional[str]
    state: GameStateResponse


def create_app(engine_path: Optional[str] = None, book_path: Optional[str] = None) -> FastAPI:
    """Build the HTTP API.

    Args:
        engine_path: Optional UCI engine binary; engine moves then come from
            that process instead of the built-in search.
        book_path: Optional JSON opening book; the built-in book otherwise.
    """
    logging.basicConfig(level=logging.INFO)

    book = open_book(book_path)
    external = ExternalMoveSource(UCIProcess([engine_path])) if engine_path else None

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        if external is not None:
            external.close()

    app = FastAPI(title="Chess Core API", version="0.1.0", lifespan=lifespan)

    app.add_middleware(RequestIDLoggingMiddleware)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(ValueError, value_error_handler)
    app.add_exception_handler(Exception, exception_handler)

    def new_session(game: Game) -> Session:
        service = SearchService(EngineConfig(), book=book, learning=LearningLog(), rng=random.Random())
        provider = MoveProvider(LocalMoveSource(service), external)
        return Session(game=game, service=service, provider=provider)

    store = InMemorySessionStore(new_session)

    @app.get("/healthz")
    async def healthz() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/games", response_model=CreateGameResponse)
    async def create_game(req: Optional[CreateGameRequest] = None) -> CreateGameResponse:
        game = _game_from_fen(req.fen) if req is not None and req.fen else Game.new()
        game_id = store.create(game)
        logger.info("game created", extra={"game_id": game_id})
        return CreateGameResponse(game_id=game_id, fen=game.to_fen())

    @app.delete("/api/games/{game_id}")
    async def delete_game(game_id: str) -> Dict[str, str]:
        _require_session(store, game_id)
        store.delete(game_id)
        logger.info("game deleted", extra={"game_id": game_id})
        return {"status": "deleted"}

    @app.get("/api/games/{game_id}/state", response_model=GameStateResponse)
    async def get_state(game_id: str) -> GameStateResponse:
        return _state(game_id, _require_session(store, game_id).game)

    @app.post("/api/games/{game_id}/position", response_model=GameStateResponse)
    async def set_position(game_id: str, req: SetPositionRequest) -> GameStateResponse:
        _require_session(store, game_id)
        session = store.replace_game(game_id, _game_from_fen(req.fen))
        return _state(game_id, session.game)

    @app.get("/api/games/{game_id}/legal-moves")
    async def legal_moves(game_id: str, square: Optional[str] = None) -> Dict[str, Any]:
        game = _require_session(store, game_id).game
        moves = game.legal_moves()
        if square is not None:
            try:
                origin = str_to_square(square.lower())
            except ValueError as e:
                raise APIError(400, str(e))
            moves = [m for m in moves if m.source == origin]
        return {"square": square, "moves": [m.to_coordinate() for m in moves]}

    @app.post("/api/games/{game_id}/move", response_model=GameStateResponse)
    async def make_move(game_id: str, req: MoveRequest) -> GameStateResponse:
        session = _require_session(store, game_id)
        game = session.game
        try:
            move = game.parse(req.move)
        except ValueError as e:
            raise APIError(400, str(e))
        try:
            game.apply_move(move)
        except ValueError:
            raise APIError(400, "illegal move", code="illegal_move")
        _settle(session)
        return _state(game_id, game)

    @app.post("/api/games/{game_id}/undo", response_model=GameStateResponse)
    async def undo(game_id: str) -> GameStateResponse:
        game = _require_session(store, game_id).game
        try:
            game.undo_move()
        except ValueError as e:
            raise APIError(400, str(e))
        return _state(game_id, game)

    @app.post("/api/games/{game_id}/engine-move", response_model=EngineMoveResponse)
    async def engine_move(game_id: str, req: EngineMoveRequest) -> EngineMoveResponse:
        session = _require_session(store, game_id)
        game = session.game
        try:
            difficulty = Difficulty.parse(req.difficulty)
        except ValueError as e:
            raise APIError(400, str(e))
        if game.is_over():
            raise APIError(409, "game is over")
        side = game.side
        move = await session.provider.request_move(game.board, side, game.state, difficulty)
        if move is not None:
            game.apply_move(move)
            session.engine_color = side
            _settle(session)
        return EngineMoveResponse(
            move=move.to_coordinate() if move is not None else None,
            diagnostic=session.provider.last_diagnostic,
            state=_state(game_id, game),
        )

    @app.post("/api/games/{game_id}/search")
    async def search(game_id: str, req: SearchRequest) -> Dict[str, Any]:
        session = _require_session(store, game_id)
        game = session.game
        res = await session.service.search_async(
            game.board,
            game.side,
            game.state,
            depth=req.depth or 1,
            movetime_ms=req.movetime_ms,
        )
        return {
            "best_move": res.best_move.to_coordinate() if res.best_move else None,
            "score": res.score,
            "depth": res.depth,
            "nodes": res.nodes,
            "time_ms": res.time_ms,
            "from_book": res.from_book,
            "fallback": res.fallback,
            "cache": {"hits": res.cache_hits, "misses": res.cache_misses},
            "iters": res.iters,
        }

    @app.post("/api/perft")
    async def perft(req: PerftRequest) -> Dict[str, Any]:
        board, side, state = _game_from_fen(req.fen).snapshot()
        return {"nodes": perft_nodes(board, side, state, req.depth)}

    return app


def _game_from_fen(fen: str) -> Game:
    try:
        return Game.from_fen(fen)
    except ValueError:
        raise APIError(400, "invalid FEN")


def _require_session(store: InMemorySessionStore, game_id: str) -> Session:
    session = store.get(game_id)
    if session is None:
        raise HTTPException(status_code=404, detail="game not found")
    return session


def _settle(session: Session) -> None:
    """Feed the game result to the learning log once the game ends."""
    game = session.game
    learning = session.service.learning
    if session.settled or session.engine_color is None or learning is None or not game.is_over():
        return
    if game.checkmate():
        result = "loss" if game.side == session.engine_color else "win"
    else:
        result = "draw"
    learning.record_result(result)
    session.settled = True


def _state(game_id: str, game: Game) -> GameStateResponse:
    history = game.move_history()
    return GameStateResponse(
        game_id=game_id,
        fen=game.to_fen(),
        side_to_move=game.side,
        legal_moves=[m.to_coordinate() for m in game.legal_moves()],
        in_check=game.in_check(),
        checkmate=game.checkmate(),
        stalemate=game.stalemate(),
        draw=game.is_draw(),
        last_move=history[-1] if history else None,
        move_history=history,
    )


# Default app for non-factory servers
app = create_app()
