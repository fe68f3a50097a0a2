from sqlmodel import Session, SQLModel, create_engine

from planner.core.config import settings

connect_args = {}
if settings.SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.SQLALCHEMY_DATABASE_URI, connect_args=connect_args)


def init_db(session: Session) -> None:
    # Tables are created from the SQLModel metadata; migrations are not managed here.
    from planner import models  # noqa: F401

    SQLModel.metadata.create_all(session.get_bind())
