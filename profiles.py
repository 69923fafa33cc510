import logging
from dataclasses import dataclass
from typing import Optional, Union

from codes import derive_code
from errors import RecordNotFound, StoreConflict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DisplayFields:
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None

    @classmethod
    def from_user(cls, user):
        return cls(
            first_name=user.first_name,
            last_name=user.last_name,
            username=user.username,
        )

    def as_record(self) -> dict:
        return {
            "firstName": self.first_name,
            "lastName": self.last_name,
            "username": self.username,
        }


@dataclass(frozen=True)
class Profile:
    id: str
    chat_id: str
    first_name: Optional[str]
    last_name: Optional[str]
    username: Optional[str]
    unique_code: str

    @classmethod
    def from_record(cls, record: dict):
        """Build a Profile from a store record in PocketBase field shape."""
        return cls(
            id=str(record["id"]),
            chat_id=str(record["chatId"]),
            first_name=record.get("firstName") or None,
            last_name=record.get("lastName") or None,
            username=record.get("username") or None,
            unique_code=record.get("uniqueCode") or "",
        )


@dataclass(frozen=True)
class Found:
    profile: Profile


@dataclass(frozen=True)
class Absent:
    pass


@dataclass(frozen=True)
class Failure:
    cause: Exception


@dataclass(frozen=True)
class Saved:
    code: str
    profile: Profile
    created: bool


LookupResult = Union[Found, Absent, Failure]
UpsertResult = Union[Saved, Failure]


class ProfileService:
    """Lookup and create-or-update of profiles keyed by chat id."""

    def __init__(self, store, salt: str):
        self.store = store
        self.salt = salt

    def code_for(self, chat_id) -> str:
        return derive_code(chat_id, self.salt)

    def lookup(self, chat_id) -> LookupResult:
        try:
            record = self.store.get_first("chatId", chat_id)
            return Found(Profile.from_record(record))
        except RecordNotFound:
            return Absent()
        except Exception as e:
            logger.error(f"Error fetching profile for chat {chat_id}: {e}")
            return Failure(e)

    def upsert(self, chat_id, fields: DisplayFields) -> UpsertResult:
        code = self.code_for(chat_id)
        data = {**fields.as_record(), "uniqueCode": code}
        try:
            try:
                existing = self.store.get_first("chatId", chat_id)
            except RecordNotFound:
                existing = None

            if existing:
                record = self.store.update(existing["id"], data)
                created = False
            else:
                try:
                    record = self.store.create({**data, "chatId": chat_id})
                    created = True
                except StoreConflict:
                    # A concurrent upsert created the record between our read and create.
                    logger.warning(f"Profile for chat {chat_id} created concurrently, updating instead")
                    existing = self.store.get_first("chatId", chat_id)
                    record = self.store.update(existing["id"], data)
                    created = False

            profile = Profile.from_record(record)
        except Exception as e:
            logger.error(f"Error saving profile for chat {chat_id}: {e}")
            return Failure(e)

        logger.info(f"Profile for chat {chat_id} {'created' if created else 'updated'}")
        return Saved(code=code, profile=profile, created=created)
