# database.py
import logging

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from config import get_settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def make_engine(database_url: str, pool_size: int = 10, pool_timeout: int = 30) -> Engine:
    if database_url.startswith("sqlite"):
        # SQLite 用: FastAPI のワーカースレッドから同じ接続を使う
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
        )
    # pool_size を超えた分はすぐ失敗させずキューで待たせる
    return create_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=0,
        pool_timeout=pool_timeout,
        pool_pre_ping=True,
    )


_settings = get_settings()
engine = make_engine(
    _settings.database_url,
    pool_size=_settings.db_pool_size,
    pool_timeout=_settings.db_pool_timeout,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine = None) -> None:
    # Base にテーブルを登録させるため models を読み込む
    import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def check_connection(bind: Engine = None) -> bool:
    try:
        with (bind or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error("Database connection failed: %s", e)
        return False


def describe_tables(bind: Engine = None) -> dict:
    insp = inspect(bind or engine)
    return {
        name: [col["name"] for col in insp.get_columns(name)]
        for name in insp.get_table_names()
    }
