"""
In-memory store for the shift batch being reviewed.
"""

from typing import Iterable, Iterator, Optional, Tuple

from shiftcal.logging_helper import Log
from shiftcal.shift_models import FIELD_NAMES, ShiftRecord

# Accept both response keys (startTime) and attribute names (start_time)
_FIELD_ALIASES = dict(FIELD_NAMES)
_FIELD_ALIASES.update({name: name for name in FIELD_NAMES.values()})


class ShiftStore:
    """
    Ordered collection of editable ShiftRecords.
    Ids are never renumbered: deleting a record leaves every other id as it was.
    """

    def __init__(self, records: Optional[Iterable[ShiftRecord]] = None):
        self._records = list(records) if records is not None else []

    def load(self, records: Iterable[ShiftRecord]) -> None:
        """Replace the whole batch with a new extraction."""
        self._records = list(records)
        Log.kv({"stage": "store", "action": "load", "count": len(self._records)})

    @property
    def records(self) -> Tuple[ShiftRecord, ...]:
        return tuple(self._records)

    def get(self, shift_id: int) -> Optional[ShiftRecord]:
        for record in self._records:
            if record.id == shift_id:
                return record
        return None

    def update(self, shift_id: int, field: str, value: str) -> None:
        """
        Replace one field of the matching record. Values are not validated.
        Unknown ids or fields leave the batch untouched.
        """
        attribute = _FIELD_ALIASES.get(field)
        if attribute is None:
            Log.warn(f"Ignoring update of unknown field '{field}'")
            return

        record = self.get(shift_id)
        if record is None:
            Log.warn(f"Ignoring update of unknown shift {shift_id}")
            return

        setattr(record, attribute, value)
        Log.kv({"stage": "store", "action": "update", "id": shift_id, "field": attribute})

    def delete(self, shift_id: int) -> None:
        before = len(self._records)
        self._records = [record for record in self._records if record.id != shift_id]
        Log.kv({"stage": "store", "action": "delete", "id": shift_id, "removed": before - len(self._records)})

    def reset(self) -> None:
        self._records = []
        Log.kv({"stage": "store", "action": "reset"})

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ShiftRecord]:
        return iter(tuple(self._records))
