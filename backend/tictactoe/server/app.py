from __future__ import annotations

import asyncio
import json
from http import HTTPStatus
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, ValidationError
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from shared.logging import setup_logging
from tictactoe.logic.enums import GameListing
from tictactoe.logic.exceptions import (
    ConflictError,
    GameRuleError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
)
from tictactoe.server.middleware import RateLimitMiddleware, RequestContextMiddleware
from tictactoe.server.rate_limit import SlidingWindowLimiter
from tictactoe.server.settings import TicTacToeServerSettings
from tictactoe.server.types import (
    AddPlayerRequest,
    CreateGameRequest,
    GameView,
    MakeMoveRequest,
    MoveResponse,
    PlayerRequest,
)
from tictactoe.service import TicTacToeService

logger = structlog.get_logger()

if TYPE_CHECKING:
    from starlette.requests import Request

    from tictactoe.logic.state import Game, Player

_ERROR_STATUS: dict[type[GameRuleError], HTTPStatus] = {
    NotFoundError: HTTPStatus.NOT_FOUND,
    ConflictError: HTTPStatus.CONFLICT,
    InvalidStateError: HTTPStatus.BAD_REQUEST,
    InvalidArgumentError: HTTPStatus.BAD_REQUEST,
}


class RequestBodyError(Exception):
    """A request body that could not be read or validated."""

    def __init__(self, message: str, status_code: HTTPStatus = HTTPStatus.BAD_REQUEST) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


async def _game_rule_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    status_code = HTTPStatus.BAD_REQUEST
    for error_type in type(exc).__mro__:
        if error_type in _ERROR_STATUS:
            status_code = _ERROR_STATUS[error_type]
            break
    message = exc.message if isinstance(exc, GameRuleError) else str(exc)
    logger.debug("request rejected", error_type=type(exc).__name__, status=status_code.value, error=message)
    return JSONResponse({"error": message}, status_code=status_code)


async def _request_body_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    status_code = exc.status_code if isinstance(exc, RequestBodyError) else HTTPStatus.BAD_REQUEST
    logger.debug("request body rejected", status=status_code.value, error=str(exc))
    return JSONResponse({"error": str(exc)}, status_code=status_code)


async def _parse_body[M: BaseModel](request: Request, model: type[M]) -> M:
    settings: TicTacToeServerSettings = request.app.state.settings
    raw_body = await request.body()
    if len(raw_body) > settings.max_request_body_size:
        raise RequestBodyError("Request body too large", HTTPStatus.REQUEST_ENTITY_TOO_LARGE)
    try:
        body = json.loads(raw_body)
    except ValueError:
        raise RequestBodyError("Invalid JSON body") from None
    if not isinstance(body, dict):
        raise RequestBodyError("Request body must be a JSON object")
    try:
        return model.model_validate(body)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        detail = f"{location}: {first['msg']}" if location else first["msg"]
        raise RequestBodyError(f"Invalid request body: {detail}") from None


def _query_int(request: Request, name: str, default: int | None = None) -> int | None:
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise InvalidArgumentError(f"Query parameter {name!r} must be an integer") from None


def _service(request: Request) -> TicTacToeService:
    return request.app.state.service


def _game_json(game: Game) -> dict:
    return GameView.from_game(game).model_dump(mode="json")


def _games_json(games: list[Game]) -> list[dict]:
    return [_game_json(g) for g in games]


def _player_json(player: Player) -> dict:
    return player.model_dump(mode="json")


def _players_json(players: list[Player]) -> list[dict]:
    return [_player_json(p) for p in players]


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok"})


# --- games ---
# Service calls block on entity locks and file I/O; each one runs in a worker thread.


async def create_game(request: Request) -> JSONResponse:
    req = await _parse_body(request, CreateGameRequest)
    game = await asyncio.to_thread(_service(request).create_game, req.name)
    return JSONResponse(_game_json(game), status_code=HTTPStatus.CREATED)


async def list_games(request: Request) -> JSONResponse:
    games = await asyncio.to_thread(
        _service(request).list_games,
        request.query_params.get("status") or None,
        player_id=request.query_params.get("player_id") or None,
        name_contains=request.query_params.get("name"),
        sort=request.query_params.get("sort") or None,
        limit=_query_int(request, "limit"),
    )
    return JSONResponse(_games_json(games))


async def count_games(request: Request) -> JSONResponse:
    return JSONResponse({"count": await asyncio.to_thread(_service(request).count_games)})


def _listing_endpoint(listing: GameListing):  # noqa: ANN202
    async def endpoint(request: Request) -> JSONResponse:
        games = await asyncio.to_thread(_service(request).list_games, listing=listing, sort="recent")
        return JSONResponse(_games_json(games))

    return endpoint


async def games_for_player(request: Request) -> JSONResponse:
    player_id = request.path_params["player_id"]
    games = await asyncio.to_thread(_service(request).list_games, player_id=player_id, sort="recent")
    return JSONResponse(_games_json(games))


async def get_game(request: Request) -> JSONResponse:
    game = await asyncio.to_thread(_service(request).get_game, request.path_params["game_id"])
    return JSONResponse(_game_json(game))


async def delete_game(request: Request) -> Response:
    game_id = request.path_params["game_id"]
    if not await asyncio.to_thread(_service(request).delete_game, game_id):
        raise NotFoundError(f"Game {game_id} not found")
    return Response(status_code=HTTPStatus.NO_CONTENT)


async def add_player(request: Request) -> JSONResponse:
    req = await _parse_body(request, AddPlayerRequest)
    game = await asyncio.to_thread(
        _service(request).add_player_to_game,
        request.path_params["game_id"],
        req.player_id,
    )
    return JSONResponse(_game_json(game))


async def make_move(request: Request) -> JSONResponse:
    req = await _parse_body(request, MakeMoveRequest)
    result = await asyncio.to_thread(
        _service(request).make_move,
        request.path_params["game_id"],
        req.player_id,
        req.position,
    )
    response = MoveResponse(
        move=result.move,
        outcome=result.outcome,
        status=result.status,
        next_player_id=result.next_player_id,
        game=GameView.from_game(result.game),
    )
    return JSONResponse(response.model_dump(mode="json"))


async def game_status(request: Request) -> JSONResponse:
    game_id = request.path_params["game_id"]
    status = await asyncio.to_thread(_service(request).get_game_status, game_id)
    return JSONResponse({"game_id": game_id, "status": status.value})


async def game_board(request: Request) -> JSONResponse:
    game_id = request.path_params["game_id"]
    board = await asyncio.to_thread(_service(request).get_game_board, game_id)
    return JSONResponse({"game_id": game_id, "board": [cell.value if cell else None for cell in board]})


async def current_player(request: Request) -> JSONResponse:
    player = await asyncio.to_thread(_service(request).get_current_player, request.path_params["game_id"])
    if player is None:
        raise NotFoundError("Game has no current player")
    return JSONResponse(_player_json(player))


async def winner(request: Request) -> JSONResponse:
    player = await asyncio.to_thread(_service(request).get_winner, request.path_params["game_id"])
    if player is None:
        raise NotFoundError("Game has no winner")
    return JSONResponse(_player_json(player))


async def game_moves(request: Request) -> JSONResponse:
    moves = await asyncio.to_thread(_service(request).get_game_moves, request.path_params["game_id"])
    return JSONResponse([m.model_dump(mode="json") for m in moves])


# --- players ---


async def create_player(request: Request) -> JSONResponse:
    req = await _parse_body(request, PlayerRequest)
    player = await asyncio.to_thread(_service(request).create_player, req.name, req.email)
    return JSONResponse(_player_json(player), status_code=HTTPStatus.CREATED)


async def search_players(request: Request) -> JSONResponse:
    players = await asyncio.to_thread(_service(request).search_players, request.query_params.get("name"))
    return JSONResponse(_players_json(players))


async def count_players(request: Request) -> JSONResponse:
    return JSONResponse({"count": await asyncio.to_thread(_service(request).count_players)})


def _default_limit(request: Request) -> int:
    settings: TicTacToeServerSettings = request.app.state.settings
    return settings.default_leaderboard_limit


async def leaderboard(request: Request) -> JSONResponse:
    limit = _query_int(request, "limit", _default_limit(request))
    players = await asyncio.to_thread(
        _service(request).leaderboard,
        limit,
        request.query_params.get("sort") or None,
    )
    return JSONResponse(_players_json(players))


async def leaderboard_paginated(request: Request) -> JSONResponse:
    page = await asyncio.to_thread(
        _service(request).leaderboard_paginated,
        _query_int(request, "page", 0),
        _query_int(request, "size", _default_limit(request)),
        request.query_params.get("sort") or None,
    )
    return JSONResponse(page.model_dump(mode="json"))


async def most_active(request: Request) -> JSONResponse:
    limit = _query_int(request, "limit", _default_limit(request))
    return JSONResponse(_players_json(await asyncio.to_thread(_service(request).most_active_players, limit)))


async def most_efficient(request: Request) -> JSONResponse:
    limit = _query_int(request, "limit", _default_limit(request))
    return JSONResponse(_players_json(await asyncio.to_thread(_service(request).most_efficient_players, limit)))


async def get_player(request: Request) -> JSONResponse:
    player = await asyncio.to_thread(_service(request).get_player, request.path_params["player_id"])
    return JSONResponse(_player_json(player))


async def update_player(request: Request) -> JSONResponse:
    req = await _parse_body(request, PlayerRequest)
    player = await asyncio.to_thread(
        _service(request).update_player,
        request.path_params["player_id"],
        req.name,
        req.email,
    )
    return JSONResponse(_player_json(player))


async def delete_player(request: Request) -> Response:
    player_id = request.path_params["player_id"]
    if not await asyncio.to_thread(_service(request).delete_player, player_id):
        raise NotFoundError(f"Player {player_id} not found")
    return Response(status_code=HTTPStatus.NO_CONTENT)


async def player_stats(request: Request) -> JSONResponse:
    stats = await asyncio.to_thread(_service(request).get_player_stats, request.path_params["player_id"])
    return JSONResponse(stats.model_dump(mode="json"))


def _routes() -> list[Route]:
    # fixed paths come before the {id} captures they would otherwise match
    return [
        Route("/health", health, methods=["GET"], name="health"),
        Route("/api/games", create_game, methods=["POST"], name="create_game"),
        Route("/api/games", list_games, methods=["GET"], name="list_games"),
        Route("/api/games/count", count_games, methods=["GET"], name="count_games"),
        Route("/api/games/active", _listing_endpoint(GameListing.ACTIVE), methods=["GET"], name="active_games"),
        Route("/api/games/waiting", _listing_endpoint(GameListing.WAITING), methods=["GET"], name="waiting_games"),
        Route(
            "/api/games/completed",
            _listing_endpoint(GameListing.FINISHED),
            methods=["GET"],
            name="completed_games",
        ),
        Route("/api/games/player/{player_id}", games_for_player, methods=["GET"], name="games_for_player"),
        Route("/api/games/{game_id}", get_game, methods=["GET"], name="get_game"),
        Route("/api/games/{game_id}", delete_game, methods=["DELETE"], name="delete_game"),
        Route("/api/games/{game_id}/players", add_player, methods=["POST"], name="add_player"),
        Route("/api/games/{game_id}/moves", make_move, methods=["POST"], name="make_move"),
        Route("/api/games/{game_id}/moves", game_moves, methods=["GET"], name="game_moves"),
        Route("/api/games/{game_id}/status", game_status, methods=["GET"], name="game_status"),
        Route("/api/games/{game_id}/board", game_board, methods=["GET"], name="game_board"),
        Route("/api/games/{game_id}/current-player", current_player, methods=["GET"], name="current_player"),
        Route("/api/games/{game_id}/winner", winner, methods=["GET"], name="winner"),
        Route("/api/players", create_player, methods=["POST"], name="create_player"),
        Route("/api/players", search_players, methods=["GET"], name="search_players"),
        Route("/api/players/count", count_players, methods=["GET"], name="count_players"),
        Route("/api/players/leaderboard", leaderboard, methods=["GET"], name="leaderboard"),
        Route(
            "/api/players/leaderboard/paginated",
            leaderboard_paginated,
            methods=["GET"],
            name="leaderboard_paginated",
        ),
        Route("/api/players/most-active", most_active, methods=["GET"], name="most_active"),
        Route("/api/players/most-efficient", most_efficient, methods=["GET"], name="most_efficient"),
        Route("/api/players/{player_id}", get_player, methods=["GET"], name="get_player"),
        Route("/api/players/{player_id}", update_player, methods=["PUT"], name="update_player"),
        Route("/api/players/{player_id}", delete_player, methods=["DELETE"], name="delete_player"),
        Route("/api/players/{player_id}/stats", player_stats, methods=["GET"], name="player_stats"),
    ]


def create_app(
    settings: TicTacToeServerSettings | None = None,
    service: TicTacToeService | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = TicTacToeServerSettings()
    if service is None:
        service = TicTacToeService.from_data_dir(settings.data_dir)

    app = Starlette(
        routes=_routes(),
        exception_handlers={
            GameRuleError: _game_rule_error_handler,
            RequestBodyError: _request_body_error_handler,
        },
    )
    # added last runs first: request context wraps rate limiting
    if settings.rate_limit_enabled:
        app.add_middleware(
            RateLimitMiddleware,  # type: ignore[arg-type]
            limiter=SlidingWindowLimiter(settings.requests_per_minute, settings.requests_per_hour),
            trust_forwarded_for=settings.trust_forwarded_for,
        )
    app.add_middleware(
        RequestContextMiddleware,  # type: ignore[arg-type]
        trust_forwarded_for=settings.trust_forwarded_for,
    )
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type"],
    )

    app.state.settings = settings
    app.state.service = service

    logger.info("tictactoe server ready", rate_limit_enabled=settings.rate_limit_enabled)
    return app


def get_app() -> Starlette:  # pragma: no cover
    """Factory function for uvicorn --factory tictactoe.server.app:get_app."""
    settings = TicTacToeServerSettings()
    setup_logging(log_dir=settings.log_dir)
    return create_app(settings=settings, service=TicTacToeService.from_data_dir(settings.data_dir))
