from typing import Any, ClassVar, Dict, Iterable, List, Optional

from beanie import PydanticObjectId
from bson.errors import InvalidId
from pydantic import BaseModel, ConfigDict
from pymongo import IndexModel


class StoredDocument(BaseModel):
    """
    Base model for documents persisted through an ``EntityStore``.

    Subclasses declare their collection name and indexes on an inner ``Settings`` class, the same way Beanie documents
    do, so the model can be handed to either the MongoDB or the in-memory store.

    Example:
        .. code-block:: python

            from pymongo import IndexModel
            from projecthub.database import StoredDocument

            class User(StoredDocument):
                email: str

                class Settings:
                    name = "users"
                    indexes = [IndexModel([("email", 1)], unique=True)]
    """

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    id: Optional[PydanticObjectId] = None

    class Settings:
        name: ClassVar[str] = "documents"
        indexes: ClassVar[List[IndexModel]] = []

    @classmethod
    def collection_name(cls) -> str:
        return getattr(cls.Settings, "name", cls.__name__.lower())

    @classmethod
    def unique_fields(cls) -> List[tuple[str, ...]]:
        """Return the key tuples of every unique index declared in ``Settings.indexes``."""
        unique = []
        for index in getattr(cls.Settings, "indexes", []):
            document = index.document
            if document.get("unique"):
                unique.append(tuple(document["key"].keys()))
        return unique

    def to_mongo(self) -> Dict[str, Any]:
        data = self.model_dump(exclude={"id"})
        if self.id is not None:
            data["_id"] = self.id
        return data

    @classmethod
    def from_mongo(cls, data: Dict[str, Any], fields: Optional[Iterable[str]] = None):
        data = dict(data)
        if "_id" in data:
            data["id"] = data.pop("_id")
        if fields is not None:
            # Projected reads skip validation; unselected fields are left unset.
            return cls.model_construct(**data)
        return cls.model_validate(data)


def coerce_id(value: Any) -> Optional[PydanticObjectId]:
    """Convert a string or ObjectId into a ``PydanticObjectId``, returning None when it is not a valid id."""
    if value is None:
        return None
    if isinstance(value, PydanticObjectId):
        return value
    try:
        return PydanticObjectId(value)
    except (InvalidId, TypeError):
        return None


def matches_filter(data: Dict[str, Any], query: Dict[str, Any]) -> bool:
    """Evaluate a MongoDB-style equality filter against a stored document.

    Supports plain equality, ``$in``, ``$ne`` and array membership (a scalar matches a list field containing it).
    """
    for key, expected in query.items():
        field = "_id" if key == "id" else key
        value = data.get(field)
        if isinstance(expected, dict):
            for op, operand in expected.items():
                if op == "$in":
                    candidates = value if isinstance(value, list) else [value]
                    if not any(candidate in operand for candidate in candidates):
                        return False
                elif op == "$ne":
                    if value == operand or (isinstance(value, list) and operand in value):
                        return False
                else:
                    raise ValueError(f"Unsupported filter operator: {op}")
        elif isinstance(value, list) and not isinstance(expected, list):
            if expected not in value:
                return False
        elif value != expected:
            return False
    return True
