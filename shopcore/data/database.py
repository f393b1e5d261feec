# shopcore/data/database.py
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from shopcore.utils.settings import DATABASE_URL, DB_TIMEOUT_SECONDS

Base = declarative_base()


def build_engine(url: str = DATABASE_URL, **kwargs) -> Engine:
    """Engine with bounded lock/statement timeouts for the backing store."""
    connect_args = kwargs.pop("connect_args", {})
    if url.startswith("sqlite"):
        connect_args.setdefault("timeout", DB_TIMEOUT_SECONDS)
        connect_args.setdefault("check_same_thread", False)
    elif url.startswith("postgresql"):
        timeout_ms = int(DB_TIMEOUT_SECONDS * 1000)
        connect_args.setdefault(
            "options",
            f"-c statement_timeout={timeout_ms} -c lock_timeout={timeout_ms}",
        )
    engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True, **kwargs)

    if url.startswith("sqlite"):
        #pysqlite opens transactions lazily, which breaks SAVEPOINT; take over BEGIN
        @event.listens_for(engine, "connect")
        def _sqlite_connect(dbapi_conn, _record):
            dbapi_conn.isolation_level = None
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine


engine = build_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
