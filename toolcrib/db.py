from sqlmodel import SQLModel, Session, create_engine
from fastapi import HTTPException

from toolcrib.config import get_settings
from toolcrib.errors import ToolCribError
from toolcrib.logging_config import get_logger

logger = get_logger(__name__)


def _make_engine(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


engine = _make_engine(get_settings().database_url)


def create_db_and_tables(bind=None) -> None:
    SQLModel.metadata.create_all(bind or engine)


def get_session():
    session = Session(engine)
    try:
        yield session
    except (HTTPException, ToolCribError):
        # 业务/鉴权错误：直接抛出，不做 rollback
        raise
    except Exception as e:
        # 其他异常更像程序错误/DB 错误，回滚
        session.rollback()
        logger.error("rollback: {}: {}", type(e).__name__, e)
        raise
    finally:
        session.close()
