"""
User registry and project/task store.

A user's projects and their tasks are embedded in a single container
document, so every write below touches exactly one document. Writes are
read-modify-write cycles guarded by the container's ``version`` field: the
update only lands if nobody else wrote the container since it was read,
otherwise the cycle is retried on fresh data. Project and task ids come from
counters kept in the same document, which makes them collision-free under
concurrent creation.

Lookups that miss return ``None`` (or ``False`` for deletes); the HTTP layer
turns those into 404s.
"""
import logging
from typing import Any, Callable, Dict, Iterable, Optional

from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import PROJECTS, USERS, create_document
from schemas import (
    Container, Project, Task,
    DEFAULT_PROJECT_NAME, DEFAULT_PROJECT_STATUS,
)

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 5
PROJECT_FIELDS = ("name", "status")


class WriteConflict(Exception):
    """The container kept changing between read and write."""


# Users

def register_user(db: Database, user: dict) -> Optional[dict]:
    """Insert a user and seed its empty container.

    Returns None when the email is already registered.
    """
    if db[USERS].find_one({"email": user["email"]}):
        return None
    user = {k: v for k, v in user.items() if k != "_id"}
    try:
        user_id = create_document(db, USERS, user)
    except DuplicateKeyError:
        # lost a race against another registration for the same email
        return None
    container = Container(owner_id=user_id, email=user["email"])
    create_document(db, PROJECTS, container.model_dump())
    logger.info("Registered user %s", user_id)
    return db[USERS].find_one({"_id": ObjectId(user_id)})


def get_user(db: Database, email: str) -> Optional[dict]:
    return db[USERS].find_one({"email": email})


# Containers

def get_container(db: Database, owner_id: str) -> Optional[dict]:
    return _read_container(db[PROJECTS], owner_id)


def get_project(db: Database, owner_id: str, project_id: int) -> Optional[dict]:
    container = get_container(db, owner_id)
    if container is None:
        return None
    return _find(container.get("projects", []), project_id)


def _read_container(collection, owner_id: str) -> Optional[dict]:
    return collection.find_one({"owner_id": owner_id})


def _find(items: Iterable[dict], item_id: int) -> Optional[dict]:
    for item in items:
        if item.get("id") == item_id:
            return item
    return None


def _next_id(counter: int, items: Iterable[dict]) -> int:
    # Never hand out an id at or below one already in use, even if the
    # counter lags behind imported data
    used = [item["id"] for item in items if isinstance(item.get("id"), int)]
    return max([counter or 0] + used) + 1


def _modify(db: Database, owner_id: str, mutate: Callable[[dict], Any]) -> Any:
    """Apply ``mutate`` to the owner's container and write it back atomically.

    ``mutate`` edits the container in place and returns the operation result,
    or None to abort without writing.
    """
    collection = db[PROJECTS]
    for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
        container = _read_container(collection, owner_id)
        if container is None:
            return None
        container.setdefault("projects", [])
        result = mutate(container)
        if result is None:
            return None
        written = collection.update_one(
            {"_id": container["_id"], "version": container.get("version")},
            {
                "$set": {
                    "projects": container["projects"],
                    "next_project_id": container.get("next_project_id", 0),
                },
                "$inc": {"version": 1},
            },
        )
        if written.matched_count:
            return result
        logger.info("Container of %s changed during write, retrying (attempt %d)", owner_id, attempt)
    raise WriteConflict(f"Container of {owner_id} is being modified concurrently")


# Projects

def create_project(
    db: Database, owner_id: str, name: Optional[str] = None, status: Optional[str] = None
) -> Optional[dict]:
    def mutate(container):
        project_id = _next_id(container.get("next_project_id", 0), container["projects"])
        container["next_project_id"] = project_id
        project = Project(
            id=project_id,
            name=name or DEFAULT_PROJECT_NAME,
            status=status or DEFAULT_PROJECT_STATUS,
        ).model_dump()
        container["projects"].append(project)
        return project

    return _modify(db, owner_id, mutate)


def update_project(db: Database, owner_id: str, project_id: int, fields: Dict[str, Any]) -> Optional[dict]:
    changes = {k: v for k, v in fields.items() if k in PROJECT_FIELDS and v is not None}

    def mutate(container):
        project = _find(container["projects"], project_id)
        if project is None:
            return None
        project.update(changes)
        return project

    return _modify(db, owner_id, mutate)


def delete_project(db: Database, owner_id: str, project_id: int) -> bool:
    def mutate(container):
        if _find(container["projects"], project_id) is None:
            return None
        container["projects"] = [p for p in container["projects"] if p.get("id") != project_id]
        return True

    return bool(_modify(db, owner_id, mutate))


# Tasks

def add_task(db: Database, owner_id: str, project_id: int, payload: Dict[str, Any]) -> Optional[dict]:
    fields = {k: v for k, v in payload.items() if k != "id"}

    def mutate(container):
        project = _find(container["projects"], project_id)
        if project is None:
            return None
        tasks = project.setdefault("tasks", [])
        task_id = _next_id(project.get("next_task_id", 0), tasks)
        project["next_task_id"] = task_id
        task = Task.model_validate({**fields, "id": task_id}).model_dump()
        tasks.append(task)
        return task

    return _modify(db, owner_id, mutate)


def update_task(
    db: Database, owner_id: str, project_id: int, task_id: int, fields: Dict[str, Any]
) -> Optional[dict]:
    changes = {k: v for k, v in fields.items() if k != "id" and v is not None}

    def mutate(container):
        project = _find(container["projects"], project_id)
        if project is None:
            return None
        task = _find(project.get("tasks", []), task_id)
        if task is None:
            return None
        task.update(changes)
        return task

    return _modify(db, owner_id, mutate)


def delete_task(db: Database, owner_id: str, project_id: int, task_id: int) -> bool:
    def mutate(container):
        project = _find(container["projects"], project_id)
        if project is None:
            return None
        tasks = project.get("tasks", [])
        if _find(tasks, task_id) is None:
            return None
        project["tasks"] = [t for t in tasks if t.get("id") != task_id]
        return True

    return bool(_modify(db, owner_id, mutate))
