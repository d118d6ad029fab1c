"""
CallID slot re-matching.

When a project already has caller IDs bound to its four slots, a new
sample keeps the same numbers but reorders them so the slots follow the
new sample's area-code ranking: the number whose area code ranks highest
takes L1, the next L2, then C1 and C2.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

SLOTS = ("L1", "L2", "C1", "C2")


@dataclass
class SlotAssignment:
    slot: str
    phone_number_id: Any
    phone_number: str | None
    area_code: str
    state: str
    original_slot: str

    @property
    def moved_from_slot(self) -> bool:
        return self.slot != self.original_slot

    def to_dict(self) -> dict[str, Any]:
        return {
            "slot": self.slot,
            "phoneNumberId": self.phone_number_id,
            "phoneNumber": self.phone_number,
            "areaCode": self.area_code,
            "state": self.state,
            "originalSlot": self.original_slot,
            "movedFromSlot": self.moved_from_slot,
        }


def area_code(phone_number: Any) -> str:
    return str(phone_number or "")[:3]


def existing_assignments(record: dict[str, Any]) -> list[SlotAssignment]:
    """Filled slots of a project's CallID record, in slot order."""
    filled = []
    for slot in SLOTS:
        callid = record.get(f"CallID{slot}")
        if not callid:
            continue
        phone = record.get(f"PhoneNumber{slot}")
        filled.append(SlotAssignment(
            slot=slot,
            phone_number_id=callid,
            phone_number=phone,
            area_code=area_code(phone),
            state=record.get(f"StateAbbr{slot}") or "",
            original_slot=slot,
        ))
    return filled


def has_filled_slots(record: dict[str, Any] | None) -> bool:
    return bool(record) and any(record.get(f"CallID{slot}") for slot in SLOTS)


def rematch(assignments: Iterable[SlotAssignment], ranked_area_codes: list[str]) -> list[SlotAssignment]:
    """
    Reorder ``assignments`` by the new area-code ranking.

    Unranked area codes sort after ranked ones; ties keep their slot order.
    """
    priority = {code: index for index, code in enumerate(ranked_area_codes)}
    ordered = sorted(assignments, key=lambda a: priority.get(a.area_code, len(priority)))
    return [
        SlotAssignment(
            slot=slot,
            phone_number_id=item.phone_number_id,
            phone_number=item.phone_number,
            area_code=item.area_code,
            state=item.state,
            original_slot=item.original_slot,
        )
        for slot, item in zip(SLOTS, ordered)
    ]


def table_column_values(assignments: Iterable[SlotAssignment]) -> dict[str, str]:
    """CALLIDxx column → phone number, for slots that have one."""
    return {f"CALLID{a.slot}": a.phone_number for a in assignments if a.phone_number}
