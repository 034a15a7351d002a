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

# Collection names are the wire contract with the document store.
PAGES_COLLECTION = "pages"
EVENTS_COLLECTION = "events"
STAFF_MEMBERS_COLLECTION = "staffMembers"
SUPPORTERS_COLLECTION = "supporters"
TESTIMONIALS_COLLECTION = "testimonials"
GALLERY_GROUPS_COLLECTION = "galleryGroups"
PHOTOS_COLLECTION = "photos"


def photos_collection_path(group_id: str) -> str:
    return f"{GALLERY_GROUPS_COLLECTION}/{group_id}/{PHOTOS_COLLECTION}"


def photo_storage_path(group_id: str, photo_id: str, file_name: str) -> str:
    """Object storage path for an uploaded gallery photo."""
    return f"{GALLERY_GROUPS_COLLECTION}/{group_id}/{photo_id}-{file_name}"
