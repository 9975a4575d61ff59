from __future__ import annotations

import json
import operator
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Generic, Mapping, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel

from errors import StorageUnavailableError
from models.records import Reading, Sensor
from settings import get_settings

ModelT = TypeVar("ModelT", bound=BaseModel)

Filter = Mapping[str, Any]
SortSpec = Sequence[Tuple[str, int]]

ASCENDING = 1
DESCENDING = -1


def _in(actual: Any, expected: Any) -> bool:
    return actual in expected


_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "$eq": operator.eq,
    "$ne": operator.ne,
    "$gt": operator.gt,
    "$gte": operator.ge,
    "$lt": operator.lt,
    "$lte": operator.le,
    "$in": _in,
}


def _matches(document: BaseModel, criteria: Optional[Filter]) -> bool:
    if not criteria:
        return True
    for field, condition in criteria.items():
        actual = getattr(document, field, None)
        if isinstance(condition, Mapping):
            for op_name, expected in condition.items():
                try:
                    op = _OPERATORS[op_name]
                except KeyError as exc:
                    raise ValueError(f"Unsupported filter operator {op_name!r}.") from exc
                if actual is None and op_name not in {"$eq", "$ne"}:
                    return False
                if not op(actual, expected):
                    return False
        elif actual != condition:
            return False
    return True


class DocumentCollection(Generic[ModelT]):
    """Thread-safe in-memory document collection with optional JSON persistence."""

    def __init__(
        self,
        name: str,
        model: Type[ModelT],
        persistence_path: Optional[Path] = None,
        key: str = "id",
    ) -> None:
        self.name = name
        self.model = model
        self.key = key
        self._items: Dict[str, ModelT] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def insert(self, item: ModelT) -> None:
        """Append a new document. Existing keys are never overwritten."""
        key = getattr(item, self.key)
        with self._lock:
            if key in self._items:
                raise ValueError(f"Document {key!r} already exists in {self.name!r}.")
            self._items[key] = item.model_copy(deep=True)
            try:
                self._persist()
            except StorageUnavailableError:
                del self._items[key]
                raise

    def put(self, item: ModelT) -> None:
        """Insert or replace a document by key."""
        key = getattr(item, self.key)
        with self._lock:
            previous = self._items.get(key)
            self._items[key] = item.model_copy(deep=True)
            try:
                self._persist()
            except StorageUnavailableError:
                if previous is None:
                    del self._items[key]
                else:
                    self._items[key] = previous
                raise

    def get(self, key: str) -> Optional[ModelT]:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            return item.model_copy(deep=True)

    def find(
        self,
        criteria: Optional[Filter] = None,
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> list[ModelT]:
        """Return deep copies of matching documents, sorted and sliced."""

        with self._lock:
            matched = [item for item in self._items.values() if _matches(item, criteria)]
            for field, direction in reversed(list(sort or [])):
                matched.sort(key=lambda doc: getattr(doc, field), reverse=direction < 0)
            end = None if limit is None else skip + limit
            return [item.model_copy(deep=True) for item in matched[skip:end]]

    def count(self, criteria: Optional[Filter] = None) -> int:
        with self._lock:
            return sum(1 for item in self._items.values() if _matches(item, criteria))

    def scan(self) -> list[ModelT]:
        """Return deep copies of all stored documents."""

        with self._lock:
            return [item.model_copy(deep=True) for item in self._items.values()]

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {key: item.model_dump(mode="json") for key, item in self._items.items()}
        tmp_path = self.persistence_path.with_suffix(self.persistence_path.suffix + ".tmp")
        try:
            tmp_path.write_text(json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False), encoding="utf-8")
            tmp_path.replace(self.persistence_path)
        except OSError as exc:
            raise StorageUnavailableError(
                f"Collection {self.name!r} could not be persisted: {exc}"
            ) from exc

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text(encoding="utf-8") or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for key, payload in data.items():
            self._items[key] = self.model.model_validate(payload)


@lru_cache
def build_default_readings(path: Optional[str] = None) -> DocumentCollection[Reading]:
    settings = get_settings()
    readings_path = settings.readings_persistence_path if path is None else path
    persistence = Path(readings_path) if readings_path else None
    return DocumentCollection(name="lecturas", model=Reading, persistence_path=persistence)


@lru_cache
def build_default_sensors(path: Optional[str] = None) -> DocumentCollection[Sensor]:
    settings = get_settings()
    sensors_path = settings.sensors_persistence_path if path is None else path
    persistence = Path(sensors_path) if sensors_path else None
    return DocumentCollection(name="sensores", model=Sensor, persistence_path=persistence)
