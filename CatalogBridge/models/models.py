"""
Core Models Module

Database engine configuration. Domain models live in separate files and are
imported here so they register with SQLModel metadata.
"""

from sqlalchemy import create_engine
from sqlmodel import SQLModel

from .catalog_models import *
from .integration_models import *
from .sync_job_models import *

from CatalogBridge.config import get_settings

database_url = get_settings().database_url

connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}

engine = create_engine(
    database_url,
    echo=False,
    pool_pre_ping=True,
    connect_args=connect_args,
)


# Create tables if they don't exist
def create_db_and_tables():
    SQLModel.metadata.create_all(engine)
