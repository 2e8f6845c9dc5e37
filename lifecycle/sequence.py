"""Human-readable dossier numbers: PREFIX-YYYYMMDD-NNNN.

The per-day sequence comes from an atomic store counter. The counter is
seeded with the highest number already stored for that day, and every
insert still runs under the unique constraint on `number`, retrying with
the next counter value on a collision.
"""

import logging
import re
import secrets
import time
from datetime import date, datetime
from typing import Callable, Optional, Union

from config import settings
from contracts import ConflictError, Dossier, DuplicateRecordError
from store import Collections, RecordStore, to_document

logger = logging.getLogger(__name__)


class SequenceAllocator:
    """Allocates dossier numbers and inserts dossiers under them."""

    def __init__(
        self,
        store: RecordStore,
        prefix: Optional[str] = None,
        max_attempts: Optional[int] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.prefix = prefix or settings.number_prefix
        self.max_attempts = max_attempts or settings.max_allocation_attempts
        self.clock = clock

    def day_prefix(self, for_date: Union[date, datetime]) -> str:
        return f"{self.prefix}-{for_date:%Y%m%d}-"

    def format_number(self, for_date: Union[date, datetime], sequence: int) -> str:
        return f"{self.day_prefix(for_date)}{sequence:04d}"

    def counter_key(self, for_date: Union[date, datetime]) -> str:
        return f"dossier_number:{self.prefix}-{for_date:%Y%m%d}"

    def highest_sequence(self, for_date: Union[date, datetime]) -> int:
        """Highest sequence already stored for the day, 0 if none."""
        pattern = "^" + re.escape(self.day_prefix(for_date))
        highest = 0
        for doc in self.store.find(Collections.DOSSIERS, {"number": {"$regex": pattern}}):
            try:
                highest = max(highest, int(doc["number"].rsplit("-", 1)[-1]))
            except ValueError:
                continue
        return highest

    def allocate(self, for_date: Optional[Union[date, datetime]] = None) -> str:
        """Next number for the day. Unique as long as every writer uses the counter."""
        for_date = for_date or self.clock()
        sequence = self.store.increment_counter(
            self.counter_key(for_date),
            floor=self.highest_sequence(for_date),
        )
        return self.format_number(for_date, sequence)

    def fallback_number(self) -> str:
        """Time-based number used once sequential allocation is exhausted."""
        return f"{self.prefix}-{int(time.time() * 1000)}{secrets.token_hex(2)}"

    def _insert(self, dossier: Dossier) -> Dossier:
        return Dossier.model_validate(self.store.insert(Collections.DOSSIERS, to_document(dossier)))

    def insert_with_number(
        self,
        dossier: Dossier,
        for_date: Optional[Union[date, datetime]] = None,
    ) -> Dossier:
        """Insert a dossier, assigning it a number if it has none.

        Raises:
            ConflictError: neither a sequential nor a fallback number could be stored
        """
        if dossier.number:
            try:
                return self._insert(dossier)
            except DuplicateRecordError as e:
                raise ConflictError(f"Dossier number already in use: {dossier.number}") from e

        for_date = for_date or self.clock()
        for attempt in range(1, self.max_attempts + 1):
            candidate = dossier.model_copy(update={"number": self.allocate(for_date)})
            try:
                return self._insert(candidate)
            except DuplicateRecordError as e:
                if e.field != "number":
                    raise
                logger.debug("Number %s taken (attempt %d)", candidate.number, attempt)

        candidate = dossier.model_copy(update={"number": self.fallback_number()})
        logger.error(
            "Sequential numbering exhausted after %d attempts, using %s",
            self.max_attempts, candidate.number,
        )
        try:
            return self._insert(candidate)
        except DuplicateRecordError as e:
            raise ConflictError("Could not allocate a unique dossier number") from e
