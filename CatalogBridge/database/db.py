from sqlalchemy import event
from sqlalchemy.engine import Engine

from CatalogBridge.models.models import engine, create_db_and_tables


def configure_sqlite_engine(target: Engine) -> Engine:
    """
    Enable foreign keys and let SQLAlchemy own BEGIN on SQLite engines.

    pysqlite defers BEGIN until the first write, which would make the first
    per-record SAVEPOINT open (and RELEASE commit) its own transaction.
    """
    if target.dialect.name != "sqlite":
        return target

    @event.listens_for(target, "connect")
    def on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(target, "begin")
    def on_begin(connection):
        connection.exec_driver_sql("BEGIN")

    return target


configure_sqlite_engine(engine)


__all__ = ["engine", "create_db_and_tables", "configure_sqlite_engine"]
