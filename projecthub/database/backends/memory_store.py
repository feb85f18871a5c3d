import copy
from typing import Any, Dict, Iterable, List, Optional, Type

from beanie import PydanticObjectId
from pydantic import ValidationError

from projecthub.database.backends.entity_store import EntityStore, T
from projecthub.database.core.document import coerce_id, matches_filter
from projecthub.database.core.exceptions import DocumentValidationError, DuplicateInsertError


class InMemoryEntityStore(EntityStore[T]):
    """Process-local implementation of the entity store.

    Documents are kept as plain dicts keyed by id, the same shape MongoDB stores them in. Each primitive completes
    without awaiting, so it is atomic with respect to other coroutines on the same event loop; sequences of primitives
    are not. Unique indexes declared on the model's ``Settings.indexes`` are enforced on create and update.

    Args:
        model_cls (Type[T]): The document model stored in this collection.

    Example:
        .. code-block:: python

            from projecthub.database import InMemoryEntityStore

            users = InMemoryEntityStore(User)
            await users.initialize()
            user = await users.create(User(first_name="Ada", ...))
    """

    def __init__(self, model_cls: Type[T], **kwargs):
        super().__init__(model_cls, **kwargs)
        self._documents: Dict[PydanticObjectId, Dict[str, Any]] = {}

    async def initialize(self):
        return None

    def _check_unique(self, data: Dict[str, Any], exclude_id: Optional[PydanticObjectId] = None):
        for keys in self.model_cls.unique_fields():
            candidate = tuple(data.get(key) for key in keys)
            for other_id, other in self._documents.items():
                if other_id == exclude_id:
                    continue
                if tuple(other.get(key) for key in keys) == candidate:
                    raise DuplicateInsertError(
                        f"Duplicate key error: {self.model_cls.collection_name()} {dict(zip(keys, candidate))}"
                    )

    def _validate(self, data: Dict[str, Any]) -> T:
        try:
            return self.model_cls.from_mongo(data)
        except ValidationError as e:
            raise DocumentValidationError(
                f"{self.model_cls.__name__} failed validation: {e.error_count()} error(s)", errors=e.errors()
            ) from e

    async def create(self, doc: T) -> T:
        data = doc.to_mongo()
        data["_id"] = coerce_id(data.get("_id")) or PydanticObjectId()
        validated = self._validate(data)
        data = validated.to_mongo()
        if data["_id"] in self._documents:
            raise DuplicateInsertError(f"Duplicate key error: _id {data['_id']}")
        self._check_unique(data)
        self._documents[data["_id"]] = copy.deepcopy(data)
        self.logger.debug(f"Inserted {self.model_cls.collection_name()} {data['_id']}")
        return self.model_cls.from_mongo(copy.deepcopy(data))

    async def find_by_id(self, id: Any, fields: Optional[Iterable[str]] = None) -> Optional[T]:
        key = coerce_id(id)
        if key is None or key not in self._documents:
            return None
        data = copy.deepcopy(self._documents[key])
        if fields is not None:
            selected = set(fields) | {"_id"}
            data = {k: v for k, v in data.items() if k in selected}
        return self.model_cls.from_mongo(data, fields=fields)

    async def find_one(self, query: Dict[str, Any]) -> Optional[T]:
        for data in self._documents.values():
            if matches_filter(data, query):
                return self.model_cls.from_mongo(copy.deepcopy(data))
        return None

    async def find(self, query: Dict[str, Any]) -> List[T]:
        return [
            self.model_cls.from_mongo(copy.deepcopy(data))
            for data in self._documents.values()
            if matches_filter(data, query)
        ]

    async def update(
        self, id: Any, patch: Dict[str, Any], *, return_updated: bool = True, run_validation: bool = True
    ) -> Optional[T]:
        key = coerce_id(id)
        if key is None or key not in self._documents:
            return None
        before = self._documents[key]
        merged = {**copy.deepcopy(before), **patch, "_id": key}
        if run_validation:
            merged = self._validate(merged).to_mongo()
        self._check_unique(merged, exclude_id=key)
        self._documents[key] = copy.deepcopy(merged)
        result = merged if return_updated else before
        return self.model_cls.from_mongo(copy.deepcopy(result))

    async def delete(self, id: Any) -> Optional[T]:
        key = coerce_id(id)
        if key is None or key not in self._documents:
            return None
        data = self._documents.pop(key)
        self.logger.debug(f"Deleted {self.model_cls.collection_name()} {key}")
        return self.model_cls.from_mongo(data)

    def _list_field(self, key: PydanticObjectId, field: str) -> List[Any]:
        values = self._documents[key].setdefault(field, [])
        if not isinstance(values, list):
            raise DocumentValidationError(f"Field {field!r} of {self.model_cls.__name__} is not a list")
        return values

    async def add_unique(self, id: Any, field: str, value: Any) -> bool:
        key = coerce_id(id)
        if key is None or key not in self._documents:
            return False
        values = self._list_field(key, field)
        if value not in values:
            values.append(value)
        return True

    async def push(self, id: Any, field: str, value: Any) -> bool:
        key = coerce_id(id)
        if key is None or key not in self._documents:
            return False
        self._list_field(key, field).append(value)
        return True

    async def pull(self, id: Any, field: str, value: Any) -> bool:
        key = coerce_id(id)
        if key is None or key not in self._documents:
            return False
        values = self._list_field(key, field)
        values[:] = [v for v in values if v != value]
        return True

    async def pull_all(self, query: Dict[str, Any], field: str, value: Any) -> int:
        matched = 0
        for key, data in self._documents.items():
            if matches_filter(data, query):
                matched += 1
                values = self._list_field(key, field)
                values[:] = [v for v in values if v != value]
        return matched
