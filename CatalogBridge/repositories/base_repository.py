from sqlalchemy.dialects import postgresql, sqlite
from sqlmodel import SQLModel, Session, select
from typing import TypeVar, Generic, Type, Optional

T = TypeVar('T', bound=SQLModel)


def dialect_insert(session: Session, table):
    """Return an INSERT construct that supports ON CONFLICT for the bound dialect"""
    dialect_name = session.get_bind().dialect.name
    if dialect_name == "postgresql":
        return postgresql.insert(table)
    if dialect_name == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"Upsert is not supported for dialect '{dialect_name}'")


class BaseRepository(Generic[T]):
    """
    Generic CRUD helpers.

    Writes only flush; the calling service owns the transaction and commits
    or rolls back through BaseService.get_async_session().
    """

    def __init__(self, model_class: Type[T]):
        self.model_class = model_class

    def get_by_id(self, session: Session, id: str) -> Optional[T]:
        return session.exec(select(self.model_class).where(self.model_class.id == id)).first()

    def create(self, session: Session, model: T) -> T:
        session.add(model)
        session.flush()
        session.refresh(model)
        return model

    def update(self, session: Session, model: T) -> T:
        session.add(model)
        session.flush()
        session.refresh(model)
        return model
