import types
from copy import copy
from typing import Any, Dict, Iterable, List, Optional, Type

from beanie import Document, init_beanie
from motor.motor_asyncio import AsyncIOMotorClient
from pydantic import ValidationError
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from projecthub.database.backends.entity_store import EntityStore, T
from projecthub.database.core.document import StoredDocument, coerce_id
from projecthub.database.core.exceptions import DocumentValidationError, DuplicateInsertError


def document_model(model_cls: Type[StoredDocument]) -> Type[Document]:
    """Build the Beanie document class that persists ``model_cls``.

    The document carries the model's fields, and its ``Settings`` carry the model's collection name and indexes, so
    ``init_beanie`` binds it to the same collection and creates the same indexes. Validators stay on ``model_cls``;
    the store validates through it before anything is written.
    """
    fields = {name: info for name, info in model_cls.model_fields.items() if name != "id"}
    settings = type(
        "Settings",
        (),
        {"name": model_cls.collection_name(), "indexes": list(getattr(model_cls.Settings, "indexes", []))},
    )
    namespace = {
        "__module__": model_cls.__module__,
        "__annotations__": {name: info.annotation for name, info in fields.items()},
        "Settings": settings,
        **{name: copy(info) for name, info in fields.items()},
    }
    return types.new_class(f"{model_cls.__name__}Document", (Document,), exec_body=lambda ns: ns.update(namespace))


class MongoEntityStore(EntityStore[T]):
    """
    MongoDB implementation of the entity store.

    Documents are modeled with Beanie on top of Motor: each store binds its own Beanie document class (see
    ``document_model``) and inserts, id lookups and queries go through it. List primitives map onto single-document
    update operators on the underlying Motor collection: ``add_unique`` is ``$addToSet``, ``push`` is ``$push`` and
    ``pull`` is ``$pull``, so each is atomic on its document and safe to retry.

    Args:
        model_cls (Type[T]): The document model to use for operations.
        db_uri (str): MongoDB connection URI string.
        db_name (str): Name of the MongoDB database to use.
        client (AsyncIOMotorClient | None): Existing client to share between stores.

    Example:
        .. code-block:: python

            from projecthub.database import MongoEntityStore

            users = MongoEntityStore(User, db_uri="mongodb://localhost:27017", db_name="projecthub")
            await users.initialize()
            user = await users.create(User(first_name="Ada", ...))
    """

    def __init__(
        self,
        model_cls: Type[T],
        db_uri: str,
        db_name: str,
        client: AsyncIOMotorClient | None = None,
        **kwargs,
    ):
        super().__init__(model_cls, **kwargs)
        self.document_cls = document_model(model_cls)
        self.client = client if client is not None else AsyncIOMotorClient(db_uri)
        self.db_name = db_name
        self._is_initialized = False

    @property
    def collection(self):
        return self.document_cls.get_motor_collection()

    async def initialize(self):
        """Bind the document class to its collection and create its indexes. Safe to call repeatedly."""
        if not self._is_initialized:
            await init_beanie(database=self.client[self.db_name], document_models=[self.document_cls])
            self._is_initialized = True

    def _validate(self, data: Dict[str, Any]) -> T:
        try:
            return self.model_cls.from_mongo(data)
        except ValidationError as e:
            raise DocumentValidationError(
                f"{self.model_cls.__name__} failed validation: {e.error_count()} error(s)", errors=e.errors()
            ) from e

    def _from_document(self, doc: Document) -> T:
        return self.model_cls.model_validate(doc.model_dump(exclude={"revision_id"}))

    async def create(self, doc: T) -> T:
        await self.initialize()
        document = self.document_cls(**self._validate(doc.to_mongo()).model_dump())
        try:
            document = await document.insert()
        except DuplicateKeyError as e:
            raise DuplicateInsertError(f"Duplicate key error: {str(e)}") from e
        self.logger.debug(f"Inserted {self.model_cls.collection_name()} {document.id}")
        return self._from_document(document)

    async def find_by_id(self, id: Any, fields: Optional[Iterable[str]] = None) -> Optional[T]:
        await self.initialize()
        key = coerce_id(id)
        if key is None:
            return None
        if fields is None:
            document = await self.document_cls.get(key)
            return self._from_document(document) if document is not None else None
        data = await self.collection.find_one({"_id": key}, {field: 1 for field in fields})
        if data is None:
            return None
        return self.model_cls.from_mongo(data, fields=fields)

    async def find_one(self, query: Dict[str, Any]) -> Optional[T]:
        await self.initialize()
        document = await self.document_cls.find_one(self._translate(query))
        return self._from_document(document) if document is not None else None

    async def find(self, query: Dict[str, Any]) -> List[T]:
        await self.initialize()
        documents = await self.document_cls.find(self._translate(query)).to_list()
        return [self._from_document(document) for document in documents]

    async def update(
        self, id: Any, patch: Dict[str, Any], *, return_updated: bool = True, run_validation: bool = True
    ) -> Optional[T]:
        await self.initialize()
        key = coerce_id(id)
        if key is None:
            return None
        if run_validation:
            current = await self.collection.find_one({"_id": key})
            if current is None:
                return None
            validated = self._validate({**current, **patch}).to_mongo()
            patch = {field: validated[field] for field in patch if field in validated}
        try:
            data = await self.collection.find_one_and_update(
                {"_id": key},
                {"$set": patch},
                return_document=ReturnDocument.AFTER if return_updated else ReturnDocument.BEFORE,
            )
        except DuplicateKeyError as e:
            raise DuplicateInsertError(f"Duplicate key error: {str(e)}") from e
        return self.model_cls.from_mongo(data) if data is not None else None

    async def delete(self, id: Any) -> Optional[T]:
        await self.initialize()
        key = coerce_id(id)
        if key is None:
            return None
        data = await self.collection.find_one_and_delete({"_id": key})
        if data is None:
            return None
        self.logger.debug(f"Deleted {self.model_cls.collection_name()} {key}")
        return self.model_cls.from_mongo(data)

    async def _update_list(self, id: Any, operator: str, field: str, value: Any) -> bool:
        await self.initialize()
        key = coerce_id(id)
        if key is None:
            return False
        result = await self.collection.update_one({"_id": key}, {operator: {field: value}})
        return result.matched_count > 0

    async def add_unique(self, id: Any, field: str, value: Any) -> bool:
        return await self._update_list(id, "$addToSet", field, value)

    async def push(self, id: Any, field: str, value: Any) -> bool:
        return await self._update_list(id, "$push", field, value)

    async def pull(self, id: Any, field: str, value: Any) -> bool:
        return await self._update_list(id, "$pull", field, value)

    async def pull_all(self, query: Dict[str, Any], field: str, value: Any) -> int:
        await self.initialize()
        result = await self.collection.update_many(self._translate(query), {"$pull": {field: value}})
        return result.matched_count

    async def exists(self, query: Dict[str, Any]) -> bool:
        await self.initialize()
        return await self.collection.count_documents(self._translate(query), limit=1) > 0

    @staticmethod
    def _translate(query: Dict[str, Any]) -> Dict[str, Any]:
        return {("_id" if key == "id" else key): value for key, value in query.items()}
