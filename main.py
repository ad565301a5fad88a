import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import Body, Depends, FastAPI, HTTPException, Request, Response, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from bson import ObjectId
from pymongo.database import Database

import database
import settings
import store
from auth import COOKIE_NAME, TOKEN_LIFETIME, cookie_options, get_current_user, issue_token, owns_container
from broadcast import manager
from database import get_db
from schemas import ProjectCreate, ProjectUpdate, UserCreate

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.PRODUCTION and settings.ACCESS_TOKEN_SECRET == settings.DEFAULT_SECRET:
        raise RuntimeError("ACCESS_TOKEN_SECRET must be set in production")
    database.connect()
    yield
    database.close()


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error translation
@app.exception_handler(store.WriteConflict)
async def write_conflict_handler(request: Request, exc: store.WriteConflict):
    logger.warning("%s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"message": "Internal Server Error", "error": str(exc)},
    )


# Utility conversions

def to_str_id(doc: dict) -> dict:
    doc = dict(doc)
    if "_id" in doc:
        doc["_id"] = str(doc["_id"])
    return doc


def public_project(project: dict) -> dict:
    project = dict(project)
    project.pop("next_task_id", None)
    return project


def public_container(container: dict) -> dict:
    container = to_str_id(container)
    container.pop("version", None)
    container.pop("next_project_id", None)
    container["projects"] = [public_project(p) for p in container.get("projects", [])]
    return container


def valid_owner_id(owner_id: str) -> str:
    if not ObjectId.is_valid(owner_id):
        raise HTTPException(status_code=422, detail="Invalid owner id")
    return owner_id


def check_task_fields(fields: Any) -> Any:
    # Field names at any depth end up as document keys
    if isinstance(fields, dict):
        for key, value in fields.items():
            if key.startswith("$") or "." in key:
                raise HTTPException(status_code=422, detail=f"Invalid field name: {key}")
            check_task_fields(value)
    elif isinstance(fields, list):
        for item in fields:
            check_task_fields(item)
    return fields


def authorize_owner(db: Database, owner_id: str, current: dict):
    if not settings.OWNER_MATCH_REQUIRED:
        return
    container = store.get_container(db, owner_id)
    if container is None:
        raise HTTPException(status_code=404, detail="Owner not found")
    if not owns_container(current, container):
        raise HTTPException(status_code=403, detail="Forbidden")


@app.get("/", response_class=PlainTextResponse)
def read_root():
    return "Task Management Server is running"


@app.get("/health")
def health():
    if database.db is None or not database.ping(database.db):
        return JSONResponse(status_code=503, content={"status": "unavailable", "database": "not connected"})
    return {"status": "ok", "database": "connected"}


# Auth routes
@app.post("/jwt")
def create_session(response: Response, identity: Dict[str, Any] = Body(...)):
    token = issue_token(identity)
    response.set_cookie(
        COOKIE_NAME,
        token,
        max_age=int(TOKEN_LIFETIME.total_seconds()),
        **cookie_options(),
    )
    return {"success": True}


@app.delete("/logout")
def logout(response: Response):
    response.delete_cookie(COOKIE_NAME, **cookie_options())
    return {"success": True}


# User routes
@app.post("/users", status_code=201)
def register(data: UserCreate, db: Database = Depends(get_db)):
    user = store.register_user(db, data.model_dump(exclude_none=True))
    if user is None:
        return JSONResponse(status_code=409, content={"message": "Email already exists"})
    return to_str_id(user)


@app.get("/users/{email}")
def get_user(email: str, db: Database = Depends(get_db)):
    user = store.get_user(db, email)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return to_str_id(user)


# Project routes
@app.get("/projects/{owner_id}")
def get_projects(owner_id: str = Depends(valid_owner_id), db: Database = Depends(get_db)):
    container = store.get_container(db, owner_id)
    if not container:
        raise HTTPException(status_code=404, detail="Owner not found")
    return public_container(container)


@app.post("/projects/{owner_id}", status_code=201)
def create_project(
    payload: ProjectCreate,
    owner_id: str = Depends(valid_owner_id),
    db: Database = Depends(get_db),
    current=Depends(get_current_user),
):
    authorize_owner(db, owner_id, current)
    project = store.create_project(db, owner_id, payload.name, payload.status)
    if project is None:
        raise HTTPException(status_code=404, detail="Owner not found")
    return public_project(project)


@app.get("/projects/{owner_id}/project/{project_id}")
def get_project(project_id: int, owner_id: str = Depends(valid_owner_id), db: Database = Depends(get_db)):
    project = store.get_project(db, owner_id, project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return public_project(project)


@app.patch("/projects/{owner_id}/project/{project_id}")
def update_project(
    project_id: int,
    payload: ProjectUpdate,
    owner_id: str = Depends(valid_owner_id),
    db: Database = Depends(get_db),
    current=Depends(get_current_user),
):
    authorize_owner(db, owner_id, current)
    project = store.update_project(db, owner_id, project_id, payload.model_dump(exclude_none=True))
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return public_project(project)


@app.delete("/projects/{owner_id}/project/{project_id}")
def delete_project(
    project_id: int,
    owner_id: str = Depends(valid_owner_id),
    db: Database = Depends(get_db),
    current=Depends(get_current_user),
):
    authorize_owner(db, owner_id, current)
    if not store.delete_project(db, owner_id, project_id):
        raise HTTPException(status_code=404, detail="Project not found")
    return {"success": True, "deleted": project_id}


# Task routes
@app.post("/projects/{owner_id}/project/{project_id}/tasks", status_code=201)
def add_task(
    project_id: int,
    payload: Dict[str, Any] = Body(...),
    owner_id: str = Depends(valid_owner_id),
    db: Database = Depends(get_db),
    current=Depends(get_current_user),
):
    authorize_owner(db, owner_id, current)
    task = store.add_task(db, owner_id, project_id, check_task_fields(payload))
    if task is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return task


@app.patch("/projects/{owner_id}/project/{project_id}/tasks/{task_id}")
def update_task(
    project_id: int,
    task_id: int,
    payload: Dict[str, Any] = Body(...),
    owner_id: str = Depends(valid_owner_id),
    db: Database = Depends(get_db),
    current=Depends(get_current_user),
):
    authorize_owner(db, owner_id, current)
    task = store.update_task(db, owner_id, project_id, task_id, check_task_fields(payload))
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@app.delete("/projects/{owner_id}/project/{project_id}/tasks/{task_id}")
def delete_task(
    project_id: int,
    task_id: int,
    owner_id: str = Depends(valid_owner_id),
    db: Database = Depends(get_db),
    current=Depends(get_current_user),
):
    authorize_owner(db, owner_id, current)
    if not store.delete_task(db, owner_id, project_id, task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return {"success": True, "deleted": task_id}


# Broadcast relay
@app.websocket("/ws")
async def relay_ws(websocket: WebSocket):
    await manager.connect(websocket)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            if message.get("text") is not None:
                await manager.broadcast(message["text"])
            elif message.get("bytes") is not None:
                await manager.broadcast(message["bytes"])
    finally:
        manager.disconnect(websocket)


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
