from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ..config import settings


def build_engine(database_url: str):
    # Read-only workload; statement timeouts are set per transaction by the query runner.
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        connect_args={"application_name": "prs-dashboard-api"},
    )


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autoflush=False, bind=engine)
