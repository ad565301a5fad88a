"""
Database Schemas for the Task Management Server

Users live in the "users" collection. Every user owns exactly one container
document in the "projects" collection that embeds the user's projects, and
each project embeds its tasks.
"""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, EmailStr

DEFAULT_PROJECT_NAME = "Untitled Project"
DEFAULT_PROJECT_STATUS = "In Progress"


# Users
class UserCreate(BaseModel):
    model_config = ConfigDict(extra="allow")

    email: EmailStr = Field(..., description="Unique email address")
    name: Optional[str] = Field(None, description="Display name")
    photo: Optional[str] = Field(None, description="Profile image URL")


# Projects and tasks (embedded documents)
class Task(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int = Field(..., description="Sequential id, unique within the project")


class Project(BaseModel):
    id: int = Field(..., description="Sequential id, unique within the container")
    name: str = Field(DEFAULT_PROJECT_NAME)
    status: str = Field(DEFAULT_PROJECT_STATUS)
    next_task_id: int = Field(0, description="Last task id handed out")
    tasks: List[Dict[str, Any]] = Field(default_factory=list)


class Container(BaseModel):
    owner_id: str = Field(..., description="User _id as string")
    email: EmailStr
    version: int = Field(0, description="Bumped on every write")
    next_project_id: int = Field(0, description="Last project id handed out")
    projects: List[Project] = Field(default_factory=list)


# Request bodies
class ProjectCreate(BaseModel):
    name: Optional[str] = None
    status: Optional[str] = None


class ProjectUpdate(BaseModel):
    name: Optional[str] = None
    status: Optional[str] = None
