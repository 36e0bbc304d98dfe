from typing import Any, Dict, Generic, List, Optional, Type, TypeVar, Union

from sqlalchemy.orm import Session

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Common CRUD over one model class.

    create() is an upsert: an existing row with the same primary key is
    replaced (import with force). insert() is strict: a duplicate primary key
    raises IntegrityError on flush (copy commit relies on it).
    """

    model: Type[T]

    def __init__(self, db: Session):
        self.db = db

    def _to_entity(self, entity: Union[T, Dict[str, Any]]) -> T:
        if isinstance(entity, dict):
            return self.model.from_dict(entity)
        return entity

    def find_by_id(self, id: Any) -> Optional[T]:
        if id is None:
            return None
        return self.db.get(self.model, id)

    def find_all(self) -> List[T]:
        return self.db.query(self.model).order_by(self.model.id).all()

    def create(self, entity: Union[T, Dict[str, Any]]) -> T:
        merged = self.db.merge(self._to_entity(entity))
        self.db.flush()
        return merged

    def insert(self, entity: Union[T, Dict[str, Any]]) -> T:
        instance = self._to_entity(entity)
        self.db.add(instance)
        self.db.flush()
        return instance

    def delete_by_id(self, id: Any) -> int:
        deleted = self.db.query(self.model).filter(self.model.id == id).delete(synchronize_session=False)
        self.db.flush()
        return deleted
