"""
Write Coordinator - the only path that writes to a Material document.

Optimistic concurrency: read the document and its version, compute the delta
against that read, then UPDATE ... WHERE version = <read version>. A zero
rowcount means another writer committed in between, so the whole
read-compute-write cycle is retried, up to a bounded number of attempts.
Nothing is ever written partially: any failure rolls back the transaction.
"""
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from railtrace import config
from railtrace.logging_config import get_logger
from railtrace.models.domain import Material
from railtrace.services.errors import ConcurrentUpdateError, NotFoundError

logger = get_logger(__name__)

# Receives the freshly read Material, returns the fields to change.
ComputeDelta = Callable[[Material], Dict[str, Any]]


class WriteCoordinator:
    """Applies reconciler deltas to the Material table under compare-and-set."""

    def __init__(
        self,
        db: Session,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None
    ):
        self.db = db
        self.max_attempts = max_attempts or config.WRITE_MAX_ATTEMPTS
        self.backoff_seconds = (
            config.WRITE_RETRY_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        )

    def read(self, material_id: str) -> Material:
        """Fresh read of the document, bypassing the session identity map."""
        material = (
            self.db.query(Material)
            .filter(Material.material_id == material_id)
            .populate_existing()
            .first()
        )
        if not material:
            raise NotFoundError("Material", material_id)
        return material

    def apply(self, material_id: str, compute: ComputeDelta) -> Material:
        """
        Run compute against a fresh read and commit its delta atomically.

        Returns the committed document. An empty delta commits nothing and
        returns the document as read.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                material = self.read(material_id)
                read_version = material.version
                delta = compute(material)

                if not delta:
                    self.db.rollback()
                    return self.read(material_id)

                values = dict(delta)
                values["version"] = read_version + 1
                values["updated_at"] = datetime.utcnow()

                result = self.db.execute(
                    update(Material)
                    .where(
                        Material.material_id == material_id,
                        Material.version == read_version,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )

                if result.rowcount == 1:
                    self.db.commit()
                    logger.info(
                        "Material write committed",
                        material_id=material_id,
                        version=read_version + 1,
                        fields=sorted(delta),
                        attempt=attempt,
                    )
                    return self.read(material_id)
            except Exception:
                self.db.rollback()
                raise

            self.db.rollback()
            logger.warning(
                "Material write conflict",
                material_id=material_id,
                read_version=read_version,
                attempt=attempt,
                max_attempts=self.max_attempts,
            )
            if attempt < self.max_attempts and self.backoff_seconds:
                time.sleep(self.backoff_seconds * attempt)

        logger.error(
            "Material write abandoned after repeated conflicts",
            material_id=material_id,
            attempts=self.max_attempts,
        )
        raise ConcurrentUpdateError(material_id, self.max_attempts)
