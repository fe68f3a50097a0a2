import io
import uuid
from typing import Any

import pypdf
from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from pypdf.errors import PyPdfError

from planner.api.deps import SessionDep
from planner.crud import create_brainstorm, get_project, list_brainstorms
from planner.models import BrainstormSessionCreate, BrainstormSessionPublic

router = APIRouter()

TEXT_CONTENT_TYPES = ("text/plain", "text/markdown")


def extract_text_from_file(file: UploadFile, content: bytes) -> str:
    """Extracts text from a given file based on content type."""
    if file.content_type == "application/pdf":
        try:
            pdf_reader = pypdf.PdfReader(io.BytesIO(content))
            pages = [page.extract_text() or "" for page in pdf_reader.pages]
        except (PyPdfError, ValueError) as e:
            raise HTTPException(status_code=400, detail=f"Failed to parse PDF: {str(e)}") from e
        return "\n".join(page for page in pages if page)

    elif file.content_type in TEXT_CONTENT_TYPES:
        try:
            return content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise HTTPException(status_code=400, detail="Text files must be UTF-8 encoded") from e

    else:
        raise HTTPException(status_code=400, detail=f"Unsupported file type: {file.content_type}")


def _require_project(session: SessionDep, project_id: uuid.UUID) -> None:
    if not get_project(session=session, project_id=project_id):
        raise HTTPException(status_code=404, detail="Project not found")


@router.post("/", response_model=BrainstormSessionPublic)
def create_new_brainstorm(
    *, project_id: uuid.UUID, session: SessionDep, brainstorm_in: BrainstormSessionCreate
) -> Any:
    _require_project(session, project_id)
    return create_brainstorm(session=session, brainstorm_in=brainstorm_in, project_id=project_id)


@router.post("/upload", response_model=BrainstormSessionPublic)
async def upload_brainstorm(
    *,
    project_id: uuid.UUID,
    session: SessionDep,
    title: str | None = Form(default=None),
    author: str | None = Form(default=None),
    file: UploadFile = File(...),
) -> Any:
    """
    Create a brainstorm session from an uploaded PDF, text or markdown file.
    """
    _require_project(session, project_id)

    content = await file.read()
    text = extract_text_from_file(file, content)
    if not text.strip():
        raise HTTPException(status_code=400, detail="Could not extract any text from the document.")

    brainstorm_in = BrainstormSessionCreate(
        title=(title or "").strip() or file.filename or "Uploaded brainstorm",
        source="upload",
        content=text,
        author=author,
    )
    return create_brainstorm(session=session, brainstorm_in=brainstorm_in, project_id=project_id)


@router.get("/", response_model=list[BrainstormSessionPublic])
def read_brainstorms(project_id: uuid.UUID, session: SessionDep) -> Any:
    _require_project(session, project_id)
    return list_brainstorms(session, project_id)
