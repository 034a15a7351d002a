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


import unittest

from shared import json_utils
from shared.models import (
    ENTITY_SPECS,
    Event,
    StaffMember,
    Testimonial,
    editable_fields,
    entity_from_document,
    entity_to_document,
)


class JsonUtilsTest(unittest.TestCase):

    def test_convert_keys_recurses(self):
        data = {"photoUrl": "u", "nested": [{"fileName": "a.jpg"}], "order": 1}
        snake = json_utils.convert_keys(data, "camel_to_snake")
        self.assertEqual(
            snake, {"photo_url": "u", "nested": [{"file_name": "a.jpg"}], "order": 1}
        )
        self.assertEqual(json_utils.convert_keys(snake, "snake_to_camel"), data)

    def test_convert_keys_rejects_unknown_direction(self):
        with self.assertRaises(ValueError):
            json_utils.convert_keys({}, "sideways")

    def test_canonical_json_ignores_key_order(self):
        self.assertEqual(
            json_utils.canonical_json({"b": 1, "a": [1, 2]}),
            json_utils.canonical_json({"a": [1, 2], "b": 1}),
        )


class ModelsTest(unittest.TestCase):

    def test_entity_from_document_fills_defaults(self):
        """Missing, null and malformed fields fall back to defaults."""
        member = entity_from_document(
            StaffMember, "s1", {"photoUrl": "https://x/s.jpg", "bio": None}
        )
        self.assertEqual(member.id, "s1")
        self.assertEqual(member.photo_url, "https://x/s.jpg")
        self.assertEqual(member.bio, "")
        self.assertIsNone(member.order)

        event = entity_from_document(Event, "e1", {"paragraphs": "not a list"})
        self.assertEqual(event.paragraphs, [])

    def test_entity_to_document_is_camel_case_without_id(self):
        doc = entity_to_document(StaffMember(id="s1", photo_url="u", order=2))
        self.assertNotIn("id", doc)
        self.assertEqual(doc["photoUrl"], "u")
        self.assertEqual(doc["order"], 2)

    def test_event_document_cleans_lists(self):
        event = Event(id="e", paragraphs=["One", "  ", ""], featured=["a", ""], order=0)
        doc = ENTITY_SPECS["events"].to_document(event)
        self.assertEqual(doc["paragraphs"], ["One"])
        self.assertEqual(doc["featured"], ["a"])
        self.assertIs(doc["archived"], False)

    def test_testimonial_document_always_has_contact(self):
        doc = ENTITY_SPECS["testimonials"].to_document(Testimonial(id="t", name="Ann"))
        self.assertEqual(doc["contact"], "")

    def test_editable_fields(self):
        accepted = editable_fields(StaffMember)
        self.assertEqual(accepted["photoUrl"], "photo_url")
        self.assertEqual(accepted["photo_url"], "photo_url")
        self.assertNotIn("id", accepted)
        self.assertNotIn("order", accepted)

    def test_specs(self):
        self.assertEqual(ENTITY_SPECS["events"].sort_field, "date")
        self.assertTrue(ENTITY_SPECS["events"].has_slots)
        self.assertFalse(ENTITY_SPECS["supporters"].has_slots)


if __name__ == "__main__":
    unittest.main()
