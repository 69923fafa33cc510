from sqlalchemy import create_engine, Column, Integer, String, DateTime, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from datetime import datetime, timezone
import logging

from errors import RecordNotFound, StoreConflict, StoreError

logger = logging.getLogger(__name__)

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


class TeleUser(Base):
    __tablename__ = 'tele_users'

    id = Column(Integer, primary_key=True)
    chat_id = Column(String, unique=True, nullable=False, index=True)
    first_name = Column(String)
    last_name = Column(String)
    username = Column(String)
    unique_code = Column(String, nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_record(self):
        """Same field shape as a PocketBase record."""
        return {
            "id": str(self.id),
            "chatId": self.chat_id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "username": self.username,
            "uniqueCode": self.unique_code,
        }


# Record field -> column
FIELD_COLUMNS = {
    "chatId": "chat_id",
    "firstName": "first_name",
    "lastName": "last_name",
    "username": "username",
    "uniqueCode": "unique_code",
}


def get_database_url(database_url):
    if database_url.startswith('postgres://'):
        database_url = database_url.replace('postgres://', 'postgresql://', 1)
    return database_url


def _columns(fields):
    values = {}
    for key, value in fields.items():
        if key not in FIELD_COLUMNS:
            raise StoreError(f"Unknown field: {key}")
        column = FIELD_COLUMNS[key]
        values[column] = str(value) if column == "chat_id" else value
    return values


class SqlProfileStore:
    """tele_users records in a SQL database; chat_id uniqueness is enforced by the table."""

    def __init__(self, database_url='sqlite:///bot.db'):
        url = get_database_url(database_url)
        if url.startswith('sqlite') and ':memory:' in url:
            self.engine = create_engine(
                url, poolclass=StaticPool, connect_args={"check_same_thread": False}
            )
        elif url.startswith('sqlite'):
            self.engine = create_engine(url)
        else:
            self.engine = create_engine(
                url,
                pool_size=5,
                max_overflow=10,
                pool_timeout=30,
                pool_recycle=1800,
                pool_pre_ping=True
            )
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    def init_db(self):
        """Create tables that don't exist yet."""
        Base.metadata.create_all(self.engine)
        logger.info("Database tables ready")

    def health_check(self):
        try:
            self.init_db()
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise StoreError(f"Database unavailable: {e}") from e

    def get_first(self, field, value):
        column = _columns({field: value})
        db = self.SessionLocal()
        try:
            user = db.query(TeleUser).filter_by(**column).order_by(TeleUser.id).first()
        except SQLAlchemyError as e:
            raise StoreError(f"Query on {field} failed: {e}") from e
        finally:
            db.close()
        if user is None:
            raise RecordNotFound(f"No tele_users record with {field}={value}")
        return user.to_record()

    def create(self, fields):
        db = self.SessionLocal()
        try:
            user = TeleUser(**_columns(fields))
            db.add(user)
            db.commit()
            logger.info(f"Created tele_users record {user.id}")
            return user.to_record()
        except IntegrityError as e:
            db.rollback()
            raise StoreConflict(f"Duplicate tele_users record: {e.orig}") from e
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(f"Create failed: {e}") from e
        finally:
            db.close()

    def update(self, record_id, fields):
        db = self.SessionLocal()
        try:
            user = db.get(TeleUser, int(record_id))
            if user is None:
                raise RecordNotFound(f"No tele_users record {record_id}")
            for column, value in _columns(fields).items():
                setattr(user, column, value)
            db.commit()
            logger.info(f"Updated tele_users record {record_id}")
            return user.to_record()
        except IntegrityError as e:
            db.rollback()
            raise StoreConflict(f"Duplicate tele_users record: {e.orig}") from e
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(f"Update failed: {e}") from e
        finally:
            db.close()
