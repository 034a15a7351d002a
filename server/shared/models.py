# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from dataclasses import asdict, dataclass, field, fields
from datetime import date
from enum import StrEnum
from typing import Any, Callable, Dict, List, Optional

from dacite import Config, from_dict

from shared.firebase_constants import (
    EVENTS_COLLECTION,
    STAFF_MEMBERS_COLLECTION,
    SUPPORTERS_COLLECTION,
    TESTIMONIALS_COLLECTION,
)
from shared.json_utils import convert_keys, snake_to_camel


class PageKey(StrEnum):
    HOME = "home"
    WHAT_WE_DO = "what-we-do"
    WHO_WE_ARE = "who-we-are"
    EVENTS = "events"
    SUPPORTERS = "supporters"
    GALLERY = "gallery"
    TESTIMONIALS = "testimonials"


@dataclass
class PageContent:
    summary: str = ""
    paragraphs: List[str] = field(default_factory=list)
    featured: List[str] = field(default_factory=list)  # photo URLs
    banner: Optional[str] = None  # home only


@dataclass
class Event:
    id: str
    title: str = ""
    date: str = ""  # YYYY-MM-DD or empty
    time: str = ""
    location: str = ""
    url: str = ""
    archived: bool = False
    summary: str = ""
    paragraphs: List[str] = field(default_factory=list)
    featured: List[str] = field(default_factory=list)
    order: Optional[int] = None


@dataclass
class Testimonial:
    id: str
    paragraph: str = ""
    name: str = ""
    contact: Optional[str] = None
    featured: List[str] = field(default_factory=list)
    order: Optional[int] = None


@dataclass
class Supporter:
    id: str
    photo_url: str = ""
    name: str = ""
    subname: str = ""
    description: str = ""
    order: Optional[int] = None


@dataclass
class StaffMember:
    id: str
    photo_url: str = ""
    name: str = ""
    title: str = ""
    subtitle: str = ""
    bio: str = ""
    order: Optional[int] = None


@dataclass
class GalleryGroup:
    id: str
    title: str = ""
    description: str = ""
    date: Optional[str] = None


@dataclass
class Photo:
    id: str
    url: Optional[str] = None
    caption: str = ""
    date: Optional[str] = None
    name: Optional[str] = None
    order: Optional[int] = None
    file_name: Optional[str] = None


def today_iso() -> str:
    return date.today().isoformat()


def _list_fields(entity_type: type) -> set[str]:
    return {f.name for f in fields(entity_type) if f.default_factory is list}


def entity_from_document(entity_type: type, doc_id: str, data: Dict[str, Any]) -> Any:
    """
    Builds a dataclass instance from a stored (camelCase) document.

    Null values and list fields holding something other than a list fall back
    to the dataclass defaults, so readers never see missing fields.
    """
    snake = convert_keys(dict(data or {}), "camel_to_snake")
    list_fields = _list_fields(entity_type)
    clean = {}
    for key, value in snake.items():
        if value is None:
            continue
        if key in list_fields and not isinstance(value, list):
            continue
        clean[key] = value
    clean["id"] = doc_id
    return from_dict(data_class=entity_type, data=clean, config=Config(check_types=False))


def entity_to_document(entity: Any) -> Dict[str, Any]:
    """Serializes an entity to its camelCase document form, without the id."""
    data = {k: v for k, v in asdict(entity).items() if v is not None}
    data.pop("id", None)
    return convert_keys(data, "snake_to_camel")


def editable_fields(entity_type: type) -> Dict[str, str]:
    """Maps accepted patch keys (snake_case and camelCase) to attribute names."""
    names: Dict[str, str] = {}
    for f in fields(entity_type):
        if f.name in ("id", "order"):
            continue
        names[f.name] = f.name
        names[snake_to_camel(f.name)] = f.name
    return names


def has_field(entity_type: type, name: str) -> bool:
    return any(f.name == name for f in fields(entity_type))


def _testimonial_document(testimonial: Testimonial) -> Dict[str, Any]:
    doc = entity_to_document(testimonial)
    doc["contact"] = testimonial.contact or ""
    doc["featured"] = [url for url in testimonial.featured if url]
    return doc


def _event_document(event: Event) -> Dict[str, Any]:
    doc = entity_to_document(event)
    doc["paragraphs"] = [p for p in event.paragraphs if p.strip() != ""]
    doc["featured"] = [url for url in event.featured if url]
    doc["archived"] = bool(event.archived)
    return doc


def _new_event(entity_id: str) -> Event:
    return Event(id=entity_id, title="New Event", date=today_iso())


@dataclass(frozen=True)
class EntitySpec:
    """Binds an ordered collection to its entity shape and load/write rules."""

    collection: str
    entity_type: type
    sort_field: str = "order"
    sort_descending: bool = False
    blank: Optional[Callable[[str], Any]] = None
    to_document: Callable[[Any], Dict[str, Any]] = entity_to_document

    def new_entity(self, entity_id: str) -> Any:
        if self.blank is not None:
            return self.blank(entity_id)
        return self.entity_type(id=entity_id)

    def from_document(self, doc_id: str, data: Dict[str, Any]) -> Any:
        return entity_from_document(self.entity_type, doc_id, data)

    @property
    def has_slots(self) -> bool:
        return has_field(self.entity_type, "featured")


ENTITY_SPECS: Dict[str, EntitySpec] = {
    EVENTS_COLLECTION: EntitySpec(
        collection=EVENTS_COLLECTION,
        entity_type=Event,
        sort_field="date",
        sort_descending=True,
        blank=_new_event,
        to_document=_event_document,
    ),
    TESTIMONIALS_COLLECTION: EntitySpec(
        collection=TESTIMONIALS_COLLECTION,
        entity_type=Testimonial,
        to_document=_testimonial_document,
    ),
    SUPPORTERS_COLLECTION: EntitySpec(
        collection=SUPPORTERS_COLLECTION, entity_type=Supporter
    ),
    STAFF_MEMBERS_COLLECTION: EntitySpec(
        collection=STAFF_MEMBERS_COLLECTION, entity_type=StaffMember
    ),
}
