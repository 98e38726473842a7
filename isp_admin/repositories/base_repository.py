import logging
from typing import Generic, List, Optional, Type, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")


class SqlAlchemyRepository(Generic[ModelT]):
    """Shared persistence plumbing for model repositories.

    Writes commit immediately. On a database error the session is rolled
    back, the failure is logged with the model name, and the error is
    re-raised for the service layer.
    """

    model: Type[ModelT]

    def __init__(self, db: Session):
        """
        Initialize the repository with database session.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    def get_by_id(self, entity_id: int) -> Optional[ModelT]:
        return self.db.get(self.model, entity_id)

    def list_all(self) -> List[ModelT]:
        return self.db.query(self.model).order_by(self.model.id).all()

    def add(self, entity: ModelT) -> ModelT:
        self.db.add(entity)
        self._commit("create", entity)
        self.db.refresh(entity)
        return entity

    def save(self, entity: ModelT) -> ModelT:
        """Persist changes made to an already attached entity."""
        self.db.add(entity)
        self._commit("update", entity)
        self.db.refresh(entity)
        return entity

    def delete(self, entity: ModelT) -> None:
        self.db.delete(entity)
        self._commit("delete", entity)

    def _commit(self, operation: str, entity=None) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Error during {operation} of {self.model.__name__}",
                extra={
                    "context": {
                        "entity_id": getattr(entity, "id", None),
                        "error": str(e),
                    }
                },
                exc_info=True,
            )
            raise
