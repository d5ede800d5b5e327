from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar
import logging

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import AppError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BatchResult:
    """Per-item outcome of a bulk operation; partial failure is a result, not an error."""

    def __init__(self) -> None:
        self.succeeded: List[Any] = []
        self.errors: List[Dict[str, Any]] = []

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.errors)

    def add_success(self, item: Any) -> None:
        self.succeeded.append(item)

    def add_error(self, item_id: Any, message: str) -> None:
        self.errors.append({"id": item_id, "error": message})

    @property
    def status_code(self) -> int:
        if self.total and not self.succeeded:
            return 500
        if self.errors:
            return 207
        return 200

    def body(self, limit: Optional[int] = None, **extra: Any) -> Dict[str, Any]:
        limit = settings.ERROR_DETAIL_LIMIT if limit is None else limit
        if self.status_code == 500:
            return {
                "success": False,
                "detail": "All operations failed",
                "failed": self.failed,
                "errors": self.errors[:limit],
            }
        body: Dict[str, Any] = {
            "success": True,
            "succeeded": len(self.succeeded),
            "failed": self.failed,
            "total": self.total,
        }
        if self.errors:
            body["partial"] = True
            body["errors"] = self.errors[:limit]
        body.update(extra)
        return body


def chunked(items: Sequence[T], size: int) -> Iterable[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def run_batch(
    db: Session,
    items: Sequence[T],
    handler: Callable[[Session, T], Any],
    item_id: Callable[[T], Any],
    batch_size: Optional[int] = None,
) -> BatchResult:
    """
    Apply ``handler`` to each item in fixed-size batches, one savepoint per item.

    A failing item rolls back only its own savepoint and is recorded; the
    transaction is committed once every batch has settled.
    """
    result = BatchResult()
    for batch in chunked(items, batch_size or settings.VARIANT_BATCH_SIZE):
        for item in batch:
            try:
                with db.begin_nested():
                    outcome = handler(db, item)
            except AppError as e:
                logger.warning("batch item %s failed: %s", item_id(item), e.message)
                result.add_error(item_id(item), e.message)
                continue
            except Exception as e:
                logger.exception("batch item %s failed", item_id(item))
                result.add_error(item_id(item), str(e))
                continue
            result.add_success(outcome)
    db.commit()
    return result
