"""In-memory stand-ins for the Firestore async client and the AI client."""

import copy
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from google.api_core.exceptions import AlreadyExists, FailedPrecondition, NotFound
from google.cloud.firestore import ArrayUnion

from deck_api.schemas.ai import GenerationOk, InsufficientInput, TransportFailure

_OPS = {
    "==": lambda a, b: a == b,
    ">=": lambda a, b: a is not None and a >= b,
    ">": lambda a, b: a is not None and a > b,
    "<=": lambda a, b: a is not None and a <= b,
    "<": lambda a, b: a is not None and a < b,
}


class FakeSnapshot:
    def __init__(self, ref: "FakeDocumentRef", record: Optional[dict]):
        self.reference = ref
        self.id = ref.id
        self.exists = record is not None
        self._data = copy.deepcopy(record["data"]) if record else None
        self.update_time = record["update_time"] if record else None

    def to_dict(self) -> Optional[dict]:
        return copy.deepcopy(self._data)


class FakeQuery:
    def __init__(self, db: "FakeFirestore", path: Tuple[str, ...], filters=None):
        self._db = db
        self._path = path
        self._filters = list(filters or [])

    def where(self, filter=None):
        return FakeQuery(self._db, self._path, self._filters + [filter])

    def _matches(self, data: dict) -> bool:
        for f in self._filters:
            if f.field_path not in data:
                return False
            if not _OPS[f.op_string](data[f.field_path], f.value):
                return False
        return True

    def _snapshots(self) -> List[FakeSnapshot]:
        snaps = []
        for key, record in list(self._db.docs.items()):
            if len(key) == len(self._path) + 1 and key[:-1] == self._path and self._matches(record["data"]):
                snaps.append(FakeSnapshot(FakeDocumentRef(self._db, key), record))
        return snaps

    async def stream(self):
        for snap in self._snapshots():
            yield snap

    async def get(self) -> List[FakeSnapshot]:
        return self._snapshots()


class FakeCollectionRef(FakeQuery):
    def __init__(self, db: "FakeFirestore", path: Tuple[str, ...]):
        super().__init__(db, path)
        self.id = path[-1]

    def document(self, document_id: Optional[str] = None) -> "FakeDocumentRef":
        return FakeDocumentRef(self._db, self._path + (document_id or uuid.uuid4().hex[:20],))

    async def add(self, document_data: dict):
        ref = self.document()
        await ref.create(document_data)
        return self._db.docs[ref.path]["update_time"], ref


class FakeDocumentRef:
    def __init__(self, db: "FakeFirestore", path: Tuple[str, ...]):
        self._db = db
        self.path = path
        self.id = path[-1]

    def collection(self, name: str) -> FakeCollectionRef:
        return FakeCollectionRef(self._db, self.path + (name,))

    async def get(self) -> FakeSnapshot:
        return FakeSnapshot(self, self._db.docs.get(self.path))

    async def create(self, document_data: dict) -> None:
        if self.path in self._db.docs:
            raise AlreadyExists(f"Document already exists: {'/'.join(self.path)}")
        self._db._write(self.path, copy.deepcopy(document_data))

    async def set(self, document_data: dict, merge: bool = False) -> None:
        self._db._set(self.path, document_data, merge)

    async def update(self, field_updates: dict, option: Optional[dict] = None) -> None:
        record = self._db.docs.get(self.path)
        if record is None:
            raise NotFound(f"No document to update: {'/'.join(self.path)}")
        if option and option.get("last_update_time") != record["update_time"]:
            raise FailedPrecondition("Document was modified since it was read")
        self._db._set(self.path, field_updates, merge=True)

    async def delete(self, option: Optional[dict] = None) -> None:
        record = self._db.docs.get(self.path)
        if option and (record is None or option.get("last_update_time") != record["update_time"]):
            raise FailedPrecondition("Document was modified since it was read")
        self._db.docs.pop(self.path, None)
        self._db.write_count += 1


class FakeWriteBatch:
    def __init__(self, db: "FakeFirestore"):
        self._db = db
        self._ops = []

    def set(self, reference: FakeDocumentRef, document_data: dict, merge: bool = False) -> None:
        self._ops.append((reference.path, copy.deepcopy(document_data), merge))

    async def commit(self) -> None:
        for path, data, merge in self._ops:
            self._db._set(path, data, merge)
        self._ops = []


class FakeFirestore:
    """Document store keyed by path tuples: ("decks", id, "flashcards", id)."""

    def __init__(self):
        self.docs: Dict[Tuple[str, ...], dict] = {}
        self.write_count = 0
        self._tick = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def _next_update_time(self) -> datetime:
        self._tick += timedelta(microseconds=1)
        return self._tick

    def _write(self, path: Tuple[str, ...], data: dict) -> None:
        self.docs[path] = {"data": data, "update_time": self._next_update_time()}
        self.write_count += 1

    def _set(self, path: Tuple[str, ...], data: dict, merge: bool) -> None:
        current = copy.deepcopy(self.docs[path]["data"]) if merge and path in self.docs else {}
        for key, value in data.items():
            if isinstance(value, ArrayUnion):
                existing = list(current.get(key) or [])
                existing.extend(v for v in value.values if v not in existing)
                current[key] = existing
            else:
                current[key] = copy.deepcopy(value)
        self._write(path, current)

    def collection(self, name: str) -> FakeCollectionRef:
        return FakeCollectionRef(self, (name,))

    def batch(self) -> FakeWriteBatch:
        return FakeWriteBatch(self)

    def write_option(self, **kwargs) -> dict:
        return kwargs

    # test helpers

    def seed(self, path: str, data: dict) -> None:
        self.docs[tuple(path.split("/"))] = {"data": copy.deepcopy(data), "update_time": self._next_update_time()}

    def children(self, *path: str) -> Dict[str, dict]:
        return {
            key[-1]: record["data"]
            for key, record in self.docs.items()
            if len(key) == len(path) + 1 and key[:-1] == path
        }


_ID_RE = re.compile(r"^ID: (\S+)$", re.MULTILINE)


class FakeAIClient:
    """Answers each batch with one well-formed question per flashcard.

    `failures` maps a 1-based call number to a result returned instead.
    """

    def __init__(self, failures: Optional[Dict[int, Any]] = None, questions_per_card: int = 1):
        self.failures = failures or {}
        self.questions_per_card = questions_per_card
        self.calls: List[dict] = []

    async def generate_structured(
        self, output_model, instruction, inline_data, items_field="quiz", schema_model=None, model=None
    ):
        self.calls.append(
            {
                "instruction": instruction,
                "inline_data": inline_data,
                "items_field": items_field,
                "schema_model": schema_model,
            }
        )
        scripted = self.failures.get(len(self.calls))
        if scripted is not None:
            return scripted

        items = []
        for card_id in _ID_RE.findall(inline_data):
            for n in range(self.questions_per_card):
                items.append(
                    {
                        "question": f"What does {card_id} describe? ({n})",
                        "related_flashcard_id": card_id,
                        "choices": [
                            {"text": "Right", "is_correct": True},
                            {"text": "Wrong 1", "is_correct": False},
                            {"text": "Wrong 2", "is_correct": False},
                            {"text": "Wrong 3", "is_correct": False},
                        ],
                    }
                )
        return GenerationOk(items=items)

    @property
    def batch_sizes(self) -> List[int]:
        return [len(_ID_RE.findall(c["inline_data"])) for c in self.calls]


def transport_failure(reason: str = "connection reset") -> TransportFailure:
    return TransportFailure(reason=reason)


def insufficient(reason: str = "Not enough flashcards") -> InsufficientInput:
    return InsufficientInput(reason=reason)
