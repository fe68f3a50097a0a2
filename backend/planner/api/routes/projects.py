import uuid
from typing import Any

from fastapi import APIRouter, HTTPException
from sqlmodel import select

from planner.api.deps import SessionDep
from planner.crud import create_project, get_project
from planner.models import Project, ProjectCreate, ProjectPublic

router = APIRouter()


@router.post("/", response_model=ProjectPublic)
def create_new_project(*, session: SessionDep, project_in: ProjectCreate) -> Any:
    return create_project(session=session, project_in=project_in)


@router.get("/", response_model=list[ProjectPublic])
def read_projects(session: SessionDep) -> Any:
    return session.exec(select(Project)).all()


@router.get("/{id}", response_model=ProjectPublic)
def read_project(id: uuid.UUID, session: SessionDep) -> Any:
    project = get_project(session=session, project_id=id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project
