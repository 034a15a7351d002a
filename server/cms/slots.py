"""
Featured-photo slots: a user-curated list of photo URLs attached to a page,
event or testimonial. Slots live inside the owning entity and are saved
with it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, MutableSequence, Optional, TypeVar

from cms.errors import InvalidIndexError, SlotLimitError
from cms.store import ContentStore
from shared.firebase_constants import GALLERY_GROUPS_COLLECTION, photos_collection_path

T = TypeVar("T")

EMPTY_SLOT = ""


def move_item(seq: MutableSequence[T], from_index: int, to_index: int) -> None:
    """Removes the item at from_index and reinserts it at to_index, in place."""
    size = len(seq)
    for index in (from_index, to_index):
        if not 0 <= index < size:
            raise InvalidIndexError(index, size)
    if from_index == to_index:
        return
    item = seq.pop(from_index)
    seq.insert(to_index, item)


class SlotList:
    """
    Operates on the owner's `featured` list in place, so every change shows
    up in the owner's dirty state.
    """

    def __init__(self, slots: List[str], max_slots: Optional[int] = None):
        self.slots = slots
        self.max_slots = max_slots

    def add_slot(self) -> int:
        if self.max_slots is not None and len(self.slots) >= self.max_slots:
            raise SlotLimitError(self.max_slots)
        self.slots.append(EMPTY_SLOT)
        return len(self.slots) - 1

    def set_slot(self, index: int, url: Optional[str]) -> None:
        self._check(index)
        self.slots[index] = url or EMPTY_SLOT

    def remove_slot(self, index: int) -> None:
        self._check(index)
        del self.slots[index]

    def reorder_slots(self, from_index: int, to_index: int) -> None:
        move_item(self.slots, from_index, to_index)

    def filled(self) -> List[str]:
        return [url for url in self.slots if url]

    def _check(self, index: int) -> None:
        if not 0 <= index < len(self.slots):
            raise InvalidIndexError(index, len(self.slots))


@dataclass
class PhotoChoice:
    id: str
    url: str
    name: str = ""


@dataclass
class PhotoChoiceGroup:
    group_id: str
    title: str
    photos: List[PhotoChoice] = field(default_factory=list)


def photo_choices(store: ContentStore) -> List[PhotoChoiceGroup]:
    """
    Lists uploaded photos grouped by gallery group for the slot picker.

    Grouping is for browsing only; a slot may hold a URL from any group.
    """
    choices = []
    for group in store.list(GALLERY_GROUPS_COLLECTION, order_by="date", descending=True):
        photos = store.list(photos_collection_path(group.id), order_by="order")
        choices.append(
            PhotoChoiceGroup(
                group_id=group.id,
                title=group.data.get("title") or "Untitled",
                photos=[
                    PhotoChoice(id=p.id, url=p.data["url"], name=p.data.get("name") or "")
                    for p in photos
                    if p.data.get("url")
                ],
            )
        )
    return choices
