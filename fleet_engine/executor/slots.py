#fleet_engine\executor\slots.py

"""Slot manager for bounding executor concurrency."""

from threading import Lock
from typing import List, Optional
from uuid import UUID


class Slot:
    """One concurrent unit of work."""

    def __init__(self, slot_id: int):
        self.slot_id = slot_id
        self.unit_id: Optional[UUID] = None

    def is_free(self) -> bool:
        return self.unit_id is None

    def bind(self, unit_id: UUID) -> None:
        """Bind unit to this slot."""
        if not self.is_free():
            raise ValueError(f"Slot {self.slot_id} already occupied")
        self.unit_id = unit_id

    def release(self) -> None:
        self.unit_id = None

    def __repr__(self) -> str:
        status = "free" if self.is_free() else f"occupied({self.unit_id})"
        return f"<Slot(id={self.slot_id}, {status})>"


class SlotManager:
    """Fixed pool of slots shared by the poll loop and the unit threads."""

    def __init__(self, max_slots: int):
        if max_slots < 1:
            raise ValueError("max_slots must be at least 1")

        self._slots = [Slot(i) for i in range(max_slots)]
        self._lock = Lock()

    def bind_free_slot(self, unit_id: UUID) -> Optional[Slot]:
        """Bind the unit to a free slot; None when all are busy."""
        with self._lock:
            for slot in self._slots:
                if slot.is_free():
                    slot.bind(unit_id)
                    return slot
        return None

    def release(self, unit_id: UUID) -> bool:
        with self._lock:
            for slot in self._slots:
                if slot.unit_id == unit_id:
                    slot.release()
                    return True
        return False

    def active_slots(self) -> List[Slot]:
        return [s for s in self._slots if not s.is_free()]

    def find_slot_by_unit(self, unit_id: UUID) -> Optional[Slot]:
        for slot in self._slots:
            if slot.unit_id == unit_id:
                return slot
        return None

    def total_slots(self) -> int:
        return len(self._slots)

    def free_slots(self) -> int:
        return sum(1 for s in self._slots if s.is_free())

    def __repr__(self) -> str:
        return (
            f"<SlotManager(total={self.total_slots()}, "
            f"free={self.free_slots()}, "
            f"active={len(self.active_slots())})>"
        )
