from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Generator, List, Optional, Tuple

from ..engine.board import Board, opponent, piece_color, piece_kind, promotion_rank
from ..engine.move import PROMOTION_PIECES, Move
from ..engine.rules import (
    apply_move,
    generate_legal_moves,
    has_legal_moves,
    is_fifty_move_draw,
    is_in_check,
    is_insufficient_material,
    is_threefold_repetition,
)
from ..engine.state import GameState, position_key
from ..eval import DEFAULT_WEIGHTS, EvalWeights, evaluate
from .cache import BoundedCache
from .learning import LearningLog
from .ordering import order_moves


logger = logging.getLogger(__name__)

MATE_SCORE = 1_000_000
# Iterative deepening stops once a score this close to mate is found
MATE_THRESHOLD = MATE_SCORE - 1024
INF = float("inf")
NULL_MOVE_REDUCTION = 3
BOOK_MAX_FULLMOVE = 10

Score = float
IterCallback = Callable[[Dict[str, Any]], None]


@dataclass
class EngineConfig:
    cache_size: int = 1000
    weights: EvalWeights = DEFAULT_WEIGHTS
    enable_nmp: bool = True


@dataclass
class SearchResult:
    best_move: Optional[Move]
    score: Optional[Score]
    depth: int
    nodes: int
    time_ms: int
    from_book: bool = False
    fallback: bool = False
    cache_hits: int = 0
    cache_misses: int = 0
    iters: List[Dict[str, Any]] = field(default_factory=list)


class _OutOfTime(Exception):
    pass


def _has_non_pawn_material(board: Board, color: str) -> bool:
    return any(piece_kind(p) not in ("p", "k") for _, _, p in board.pieces(color))


class SearchService:
    """Alpha-beta search with iterative deepening.

    One instance is one engine context: its caches, book, learning log and
    random source belong to a single game and are not shared across threads.

    Scores are from the root player's perspective. A mated side scores
    exactly ``-MATE_SCORE`` for that side, with no distance-to-mate
    adjustment.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        *,
        book: Any = None,
        learning: Optional[LearningLog] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.book = book
        self.learning = learning
        self.rng = rng or random.Random()
        self.eval_cache: BoundedCache[Score] = BoundedCache(self.config.cache_size)
        self.move_cache: BoundedCache[List[Move]] = BoundedCache(self.config.cache_size)
        self.nodes = 0
        self._deadline: Optional[float] = None

    def clear(self) -> None:
        self.eval_cache.clear()
        self.move_cache.clear()

    # --- cached primitives ---
    def legal_moves(self, board: Board, side: str, state: Optional[GameState]) -> List[Move]:
        key = (board.signature(), side, state.signature() if state else None)
        moves = self.move_cache.get(key)
        if moves is None:
            moves = generate_legal_moves(board, side, state)
            self.move_cache.put(key, moves)
        return moves

    def _evaluate(self, board: Board, side: str, state: Optional[GameState], root: str) -> Score:
        key = (board.signature(), side, root, state.signature() if state else None)
        score = self.eval_cache.get(key)
        if score is None:
            score = evaluate(board, root, state, self.config.weights)
            self.eval_cache.put(key, score)
        return score

    # --- minimax ---
    def minimax(
        self,
        board: Board,
        depth: int,
        alpha: Score,
        beta: Score,
        maximizing: bool,
        side: str,
        state: Optional[GameState] = None,
    ) -> Tuple[Score, Optional[Move]]:
        """Score ``board`` with ``side`` to move, searched ``depth`` plies.

        The maximizing player is the one whose perspective the score takes:
        ``side`` itself when ``maximizing`` is true, its opponent otherwise.
        """
        root = side if maximizing else opponent(side)
        return self._minimax(board, depth, alpha, beta, maximizing, side, state, root)

    def _minimax(
        self,
        board: Board,
        depth: int,
        alpha: Score,
        beta: Score,
        maximizing: bool,
        side: str,
        state: Optional[GameState],
        root: str,
        at_root: bool = False,
    ) -> Tuple[Score, Optional[Move]]:
        self.nodes += 1
        if self._deadline is not None and time.perf_counter() >= self._deadline:
            raise _OutOfTime()
        if depth <= 0:
            return self._evaluate(board, side, state, root), None

        enemy = opponent(side)
        moves = self.legal_moves(board, side, state)
        in_check = is_in_check(board, side)
        if not moves and in_check:
            return (-MATE_SCORE if side == root else MATE_SCORE), None
        # The root owes a move even when the position is already decided
        if not at_root and is_in_check(board, enemy) and not has_legal_moves(board, enemy, state):
            return (MATE_SCORE if side == root else -MATE_SCORE), None
        if not moves:
            return 0.0, None
        if not at_root and (
            is_fifty_move_draw(state)
            or is_insufficient_material(board)
            or is_threefold_repetition(board, side, state)
        ):
            return 0.0, None

        if (
            self.config.enable_nmp
            and depth >= NULL_MOVE_REDUCTION
            and not in_check
            and _has_non_pawn_material(board, side)
        ):
            passed = state.passed() if state is not None else None
            reduced = depth - NULL_MOVE_REDUCTION
            if maximizing and beta < INF:
                score, _ = self._minimax(board, reduced, beta - 1, beta, False, enemy, passed, root)
                if score >= beta:
                    return beta, None
            elif not maximizing and alpha > -INF:
                score, _ = self._minimax(board, reduced, alpha, alpha + 1, True, enemy, passed, root)
                if score <= alpha:
                    return alpha, None

        bias = None
        if self.learning is not None:
            learning, key = self.learning, position_key(board, side)
            bias = lambda m: learning.move_bias(key, m)  # noqa: E731

        best_move: Optional[Move] = None
        best = -INF if maximizing else INF
        for m in order_moves(board, moves, side, state, bias=bias):
            child_board, child_state = apply_move(board, m, state)
            score, _ = self._minimax(
                child_board, depth - 1, alpha, beta, not maximizing, enemy, child_state, root
            )
            if maximizing:
                if score > best or best_move is None:
                    best, best_move = score, m
                alpha = max(alpha, score)
            else:
                if score < best or best_move is None:
                    best, best_move = score, m
                beta = min(beta, score)
            if beta <= alpha:
                break
        return best, best_move

    # --- iterative deepening ---
    def _iterate(
        self,
        board: Board,
        side: str,
        state: Optional[GameState],
        depth: int,
        movetime_ms: Optional[int],
        use_book: bool,
        on_iter: Optional[IterCallback],
    ) -> Generator[Dict[str, Any], None, SearchResult]:
        start = time.perf_counter()
        self.nodes = 0
        hits0 = self.eval_cache.hits + self.move_cache.hits
        misses0 = self.eval_cache.misses + self.move_cache.misses

        def elapsed_ms() -> int:
            return int((time.perf_counter() - start) * 1000)

        def result(**kwargs: Any) -> SearchResult:
            return SearchResult(
                nodes=self.nodes,
                time_ms=elapsed_ms(),
                cache_hits=self.eval_cache.hits + self.move_cache.hits - hits0,
                cache_misses=self.eval_cache.misses + self.move_cache.misses - misses0,
                **kwargs,
            )

        moves = self.legal_moves(board, side, state)
        if not moves:
            score = -MATE_SCORE if is_in_check(board, side) else 0.0
            return result(best_move=None, score=score, depth=0)

        if use_book and self.book is not None and (state is None or state.fullmove_number <= BOOK_MAX_FULLMOVE):
            history = state.moves if state is not None else ()
            book_move = self.book.pick(history, moves)
            if book_move is not None:
                logger.info("book move", extra={"move": book_move.to_coordinate(), "ply": len(history)})
                return result(best_move=book_move, score=None, depth=0, from_book=True)

        best_move: Optional[Move] = None
        best_score: Optional[Score] = None
        completed = 0
        iters: List[Dict[str, Any]] = []
        deadline = start + movetime_ms / 1000.0 if movetime_ms else None
        for d in range(1, max(1, depth) + 1):
            iter_start = time.perf_counter()
            self._deadline = deadline
            try:
                score, move = self._minimax(board, d, -INF, INF, True, side, state, side, at_root=True)
            except _OutOfTime:
                logger.debug("iteration interrupted", extra={"depth": d, "nodes": self.nodes})
                break
            finally:
                self._deadline = None
            if move is None:
                break
            best_move, best_score, completed = move, score, d
            stats = {
                "depth": d,
                "score": score,
                "move": move.to_coordinate(),
                "nodes": self.nodes,
                "time_ms": int((time.perf_counter() - iter_start) * 1000),
            }
            iters.append(stats)
            logger.debug("iteration complete", extra=stats)
            if on_iter is not None:
                on_iter(stats)
            if score >= MATE_THRESHOLD:
                break
            if deadline is not None and time.perf_counter() >= deadline:
                break
            yield stats

        fallback = False
        if best_move is None:
            fallback = True
            best_move = self.random_move(board, side, state)
            logger.warning(
                "search fallback",
                extra={"reason": "no completed iteration", "move": best_move.to_coordinate() if best_move else None},
            )
        return result(
            best_move=best_move,
            score=best_score,
            depth=completed,
            fallback=fallback,
            iters=iters,
        )

    def search(
        self,
        board: Board,
        side: str,
        state: Optional[GameState] = None,
        depth: int = 3,
        movetime_ms: Optional[int] = None,
        *,
        use_book: bool = True,
        on_iter: Optional[IterCallback] = None,
    ) -> SearchResult:
        """Iteratively deepen to ``depth`` plies or until ``movetime_ms`` runs out."""
        steps = self._iterate(board, side, state, depth, movetime_ms, use_book, on_iter)
        while True:
            try:
                next(steps)
            except StopIteration as done:
                return done.value

    async def search_async(
        self,
        board: Board,
        side: str,
        state: Optional[GameState] = None,
        depth: int = 3,
        movetime_ms: Optional[int] = None,
        *,
        use_book: bool = True,
        on_iter: Optional[IterCallback] = None,
    ) -> SearchResult:
        """Same as ``search`` but yields to the event loop between iterations."""
        steps = self._iterate(board, side, state, depth, movetime_ms, use_book, on_iter)
        while True:
            try:
                next(steps)
            except StopIteration as done:
                return done.value
            await asyncio.sleep(0)

    # --- fallbacks and helpers ---
    def random_move(self, board: Board, side: str, state: Optional[GameState] = None) -> Optional[Move]:
        """A learned move with a good record, else a uniformly random legal move."""
        moves = self.legal_moves(board, side, state)
        if not moves:
            return None
        if self.learning is not None:
            learned = self.learning.learned_move(position_key(board, side), moves)
            if learned is not None:
                return learned
        return self.rng.choice(moves)

    def choose_promotion(self, board: Board, move: Move, state: Optional[GameState] = None) -> Move:
        """Pick the promotion piece that evaluates best for the mover."""
        color = piece_color(move.piece)
        if color is None or piece_kind(move.piece) != "p" or move.to_rank != promotion_rank(color):
            return move
        best = move
        best_score = -INF
        for letter in PROMOTION_PIECES:
            candidate = replace(move, promotion=letter)
            after, after_state = apply_move(board, candidate, state)
            score = evaluate(after, color, after_state, self.config.weights)
            if score > best_score:
                best, best_score = candidate, score
        return best
