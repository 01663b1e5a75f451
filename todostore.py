from __future__ import annotations

import datetime as dt
import json
import logging
import random
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List

DB_PATH = Path("./data.json")
ID_MIN = 0
ID_MAX = 9_999_999

logger = logging.getLogger(__name__)

_FRACTION = re.compile(r"\.(\d+)")


class StoreError(Exception):
    """Base class for todo store failures."""


class StoreReadError(StoreError):
    pass


class StoreParseError(StoreError):
    pass


class StoreWriteError(StoreError):
    pass


def parse_timestamp(raw: str) -> dt.datetime:
    """Parse an ISO-8601 timestamp; accepts a trailing Z and up to nanosecond precision."""
    text = raw.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # fromisoformat only understands up to microseconds
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    stamp = dt.datetime.fromisoformat(text)
    if stamp.tzinfo is None:
        return stamp.replace(tzinfo=dt.timezone.utc)
    return stamp.astimezone(dt.timezone.utc)


def format_timestamp(stamp: dt.datetime) -> str:
    return stamp.astimezone(dt.timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class TodoItem:
    id: int
    name: str
    category: str
    text: str
    created_at: dt.datetime

    @classmethod
    def create(
        cls,
        name: str,
        category: str,
        text: str,
        *,
        now: dt.datetime | None = None,
        rng: random.Random | None = None,
    ) -> "TodoItem":
        source = rng or random
        return cls(
            id=source.randrange(ID_MIN, ID_MAX),
            name=name,
            category=category.upper(),
            text=text,
            created_at=now or dt.datetime.now(dt.timezone.utc),
        )

    @classmethod
    def from_dict(cls, raw: object) -> "TodoItem":
        if not isinstance(raw, dict):
            raise StoreParseError(f"expected a todo object, got {type(raw).__name__}")
        try:
            item_id = raw["id"]
            if isinstance(item_id, bool) or not isinstance(item_id, int):
                raise StoreParseError(f"todo id must be an integer, got {item_id!r}")
            fields = {key: raw[key] for key in ("name", "category", "text", "created_at")}
            for key, value in fields.items():
                if not isinstance(value, str):
                    raise StoreParseError(f"todo {key} must be a string, got {value!r}")
            return cls(
                id=item_id,
                name=fields["name"],
                category=fields["category"],
                text=fields["text"],
                created_at=parse_timestamp(fields["created_at"]),
            )
        except KeyError as exc:
            raise StoreParseError(f"todo object is missing {exc.args[0]!r}") from exc
        except ValueError as exc:
            raise StoreParseError(f"bad created_at: {exc}") from exc

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "text": self.text,
            "created_at": format_timestamp(self.created_at),
        }


def parse_todos(content: str) -> List[TodoItem]:
    try:
        data = json.loads(content)
    except ValueError as exc:
        raise StoreParseError(f"error parsing the DB file: {exc}") from exc
    if not isinstance(data, list):
        raise StoreParseError("error parsing the DB file: top level is not a list")
    return [TodoItem.from_dict(raw) for raw in data]


def dump_todos(todos: List[TodoItem]) -> str:
    return json.dumps([t.to_dict() for t in todos], ensure_ascii=False, separators=(",", ":"))


class TodoStore:
    """Whole-file JSON store: every mutation re-reads, edits in memory and rewrites the file."""

    def __init__(self, path: Path | str = DB_PATH) -> None:
        self.path = Path(path)

    def load(self) -> List[TodoItem]:
        """Return all todos; a missing file is created empty and bad content reads as empty."""
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("no store at %s, creating an empty one", self.path)
            self._write([])
            return []
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("could not read %s (%s); treating as empty", self.path, exc)
            return []
        try:
            return parse_todos(content)
        except StoreParseError as exc:
            logger.warning("%s; treating %s as empty", exc, self.path)
            return []

    def append(self, item: TodoItem) -> List[TodoItem]:
        todos = self._read_strict()
        todos.append(item)
        self._write(todos)
        logger.info("added todo %s (%s)", item.id, item.name)
        return todos

    def remove_at(self, index: int) -> TodoItem:
        todos = self._read_strict()
        if index < 0 or index >= len(todos):
            raise IndexError(f"no todo at index {index} (store holds {len(todos)})")
        removed = todos.pop(index)
        self._write(todos)
        logger.info("removed todo %s (%s) at index %d", removed.id, removed.name, index)
        return removed

    def _read_strict(self) -> List[TodoItem]:
        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StoreReadError(f"error reading the DB file: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise StoreParseError(f"error parsing the DB file: {exc}") from exc
        return parse_todos(content)

    def _write(self, todos: List[TodoItem]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(dump_todos(todos), encoding="utf-8")
        except OSError as exc:
            raise StoreWriteError(f"error writing the DB file: {exc}") from exc
        logger.debug("wrote %d todos to %s", len(todos), self.path)
