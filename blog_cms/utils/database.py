import logging

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from blog_cms.config import settings
from blog_cms.utils.exceptions import ConflictError, PersistenceError

logger = logging.getLogger(__name__)

DATABASE_URL = settings.DATABASE_URL

# SQLite в одном процессе с несколькими потоками (тесты, локальная разработка)
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    DATABASE_URL,
    future=True,
    connect_args=connect_args,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def commit(db: Session, conflict_detail: str = "Resource already exists") -> None:
    """
    Зафиксировать транзакцию.

    Нарушение уникальности -> ConflictError, любая другая ошибка хранилища
    (включая таймауты) -> PersistenceError. Сессия откатывается в обоих случаях.
    """
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        raise ConflictError(conflict_detail) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Database error on commit", exc_info=True)
        raise PersistenceError() from exc
