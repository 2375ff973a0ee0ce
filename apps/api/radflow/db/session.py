from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from radflow.core.config import settings

_url = make_url(settings.DATABASE_URL)

connect_args = {}
if _url.get_backend_name().startswith("postgresql"):
    connect_args["options"] = "-c timezone=utc"
elif _url.get_backend_name() == "sqlite":
    connect_args["check_same_thread"] = False

engine = create_engine(
    settings.DATABASE_URL, pool_pre_ping=True, connect_args=connect_args
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def is_postgres(db) -> bool:
    """True when the session is bound to PostgreSQL (statement timeouts are supported)."""
    bind = db.get_bind()
    return bind.dialect.name == "postgresql"
