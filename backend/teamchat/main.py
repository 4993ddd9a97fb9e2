import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Query, Request, Response, WebSocket, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from . import projects, rooms
from .auth import SessionResolver, build_session_resolver, get_current_user_id
from .chat import ChatApi
from .config import Settings, get_settings
from .db import init_db, make_engine, make_session_factory
from .errors import ChatError, NotFound, ValidationError
from .membership import MembershipGate
from .models import User
from .realtime import RealtimeGateway
from .registry import ConnectionRegistry
from .schemas import (
    MessageCreate,
    MessageEnvelope,
    MessageList,
    RoomCreate,
    RoomEnvelope,
    RoomOut,
    RoomVisibility,
    SidebarOut,
    UserOut,
    WorkspaceRoomCreate,
)
from .store import MessageStore

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")


# Dependencies
async def get_db(request: Request):
    async with request.app.state.session_factory() as session:
        yield session


def get_chat_api(request: Request) -> ChatApi:
    return request.app.state.chat_api


def create_app(settings: Settings | None = None, session_resolver: SessionResolver | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    engine = make_engine(settings.database_url)
    session_factory = make_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_db(engine)
        logger.info("teamchat backend started (%s)", settings.app_env)
        yield
        await app.state.registry.close_all()
        await engine.dispose()

    app = FastAPI(title="Team Chat Backend", lifespan=lifespan)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    registry = ConnectionRegistry()
    resolver = session_resolver or build_session_resolver(settings)
    gate = MembershipGate(session_factory)
    store = MessageStore(session_factory)
    gateway = RealtimeGateway(registry, resolver, gate)

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.session_resolver = resolver
    app.state.registry = registry
    app.state.gateway = gateway
    app.state.chat_api = ChatApi(gate, store, gateway)

    register_error_handlers(app)
    register_routes(app)
    return app


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
        )
        return JSONResponse(status_code=400, content={"error": "Invalid request", "details": details})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def register_routes(app: FastAPI) -> None:
    @app.get("/health")
    async def health(request: Request):
        return {"status": "ok", "service": "backend", "environment": request.app.state.settings.app_env}

    @app.get("/me", response_model=UserOut)
    async def me(user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
        user = await db.get(User, user_id)
        if not user:
            raise NotFound(error="User not found")
        return UserOut.from_user(user)

    # ---------------------- CHAT ----------------------
    @app.get("/rooms/{room_id}/messages", response_model=MessageList)
    async def list_messages(
        room_id: str,
        limit: int | None = Query(default=None),
        user_id: str = Depends(get_current_user_id),
        chat: ChatApi = Depends(get_chat_api),
    ):
        messages = await chat.list_messages(user_id, room_id, limit)
        return MessageList(messages=messages)

    @app.post("/messages", response_model=MessageEnvelope, status_code=status.HTTP_201_CREATED)
    async def create_message(
        body: MessageCreate,
        user_id: str = Depends(get_current_user_id),
        chat: ChatApi = Depends(get_chat_api),
    ):
        if not body.room_id or not (body.content or "").strip():
            raise ValidationError(error="Missing required fields: roomId, content")
        message = await chat.create_message(user_id, body.room_id, body.content, body.type)
        return MessageEnvelope(message=message)

    # ---------------------- ROOMS ----------------------
    @app.post("/rooms", response_model=RoomEnvelope, status_code=status.HTTP_201_CREATED)
    async def create_room(
        body: RoomCreate,
        user_id: str = Depends(get_current_user_id),
        db: AsyncSession = Depends(get_db),
    ):
        if not body.project_id or not (body.name or "").strip():
            raise ValidationError(error="Missing required fields: projectId, name")
        room = await rooms.create_room_for_project(db, user_id, body.project_id, body.name)
        return RoomEnvelope(room=RoomOut.model_validate(room))

    @app.get("/rooms/{room_id}", response_model=RoomEnvelope)
    async def get_room(room_id: str, user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
        room = await rooms.get_room_for_user(db, user_id, room_id)
        if not room:
            raise NotFound(error="Room not found")
        return RoomEnvelope(room=RoomOut.model_validate(room))

    @app.delete("/rooms/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_room(room_id: str, user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
        await rooms.soft_delete_room(db, user_id, room_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.patch("/rooms/{room_id}/visibility", status_code=status.HTTP_204_NO_CONTENT)
    async def room_visibility(
        room_id: str,
        body: RoomVisibility,
        user_id: str = Depends(get_current_user_id),
        db: AsyncSession = Depends(get_db),
    ):
        if body.visible is None:
            raise ValidationError(error="Missing required field: visible")
        await rooms.set_room_visibility(db, user_id, room_id, body.visible)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    # ---------------------- PROJECTS ----------------------
    @app.get("/projects/sidebar", response_model=SidebarOut)
    async def sidebar(user_id: str = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
        return SidebarOut(projects=await projects.get_sidebar_projects(db, user_id))

    @app.post("/projects/rooms", response_model=RoomEnvelope, status_code=status.HTTP_201_CREATED)
    async def create_workspace_room(
        body: WorkspaceRoomCreate,
        user_id: str = Depends(get_current_user_id),
        db: AsyncSession = Depends(get_db),
    ):
        if not (body.name or "").strip():
            raise ValidationError(error="Missing required field: name")
        room = await projects.create_workspace_room(db, user_id, body.name)
        return RoomEnvelope(room=RoomOut.model_validate(room))

    @app.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_project(
        project_id: str,
        user_id: str = Depends(get_current_user_id),
        db: AsyncSession = Depends(get_db),
    ):
        await projects.soft_delete_project(db, user_id, project_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.patch("/projects/{project_id}/visibility", status_code=status.HTTP_204_NO_CONTENT)
    async def project_visibility(
        project_id: str,
        body: RoomVisibility,
        user_id: str = Depends(get_current_user_id),
        db: AsyncSession = Depends(get_db),
    ):
        if body.visible is None:
            raise ValidationError(error="Missing required field: visible")
        await projects.set_project_visibility(db, user_id, project_id, body.visible)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    # ---------------------- WEBSOCKETS ----------------------
    @app.websocket("/ws/chat")
    async def ws_chat(ws: WebSocket):
        await ws.app.state.gateway.handle(ws)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("teamchat.main:create_app", factory=True, host="0.0.0.0", port=4000, reload=True)
