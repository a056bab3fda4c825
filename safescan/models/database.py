from typing import Generator

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from safescan.config import settings


class Base(DeclarativeBase):
    pass


engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if "sqlite" in settings.database_url else {},
    echo=settings.debug,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _migrate_scans_table(connection, inspector):
    if "scans" in inspector.get_table_names():
        scan_columns = {column["name"] for column in inspector.get_columns("scans")}
        if "source" not in scan_columns:
            connection.execute(
                text("ALTER TABLE scans ADD COLUMN source VARCHAR(20) NOT NULL DEFAULT 'rules'")
            )
        if "overall_risk" not in scan_columns:
            connection.execute(
                text("ALTER TABLE scans ADD COLUMN overall_risk VARCHAR(10) NOT NULL DEFAULT 'LOW'")
            )


def _migrate_dataset_rows_table(connection, inspector):
    if "dataset_rows" in inspector.get_table_names():
        dataset_columns = {column["name"] for column in inspector.get_columns("dataset_rows")}
        if "aliases" not in dataset_columns:
            connection.execute(text("ALTER TABLE dataset_rows ADD COLUMN aliases TEXT"))


def init_db() -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)

        _migrate_scans_table(connection, inspector)
        _migrate_dataset_rows_table(connection, inspector)

    Base.metadata.create_all(bind=engine)
