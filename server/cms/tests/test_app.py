import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from cms.app import create_app
from cms.auth import StaticTokenVerifier
from cms.config import Settings
from cms.dependencies import (
    get_content_store,
    get_editor_registry,
    get_identity_verifier,
    get_storage_client,
    get_upload_tracker,
)
from cms.editor import EditorSessionRegistry
from cms.errors import StoreUnavailableError
from cms.gallery import UploadTracker
from cms.storage import InMemoryStorageClient
from cms.store import InMemoryContentStore

ADMIN = {"Authorization": "Bearer admin-token"}
OTHER_ADMIN = {"Authorization": "Bearer other-admin-token"}
VISITOR = {"Authorization": "Bearer visitor-token"}


class CmsApiTests(unittest.TestCase):
    def setUp(self):
        settings = Settings(
            use_in_memory_backends=True,
            admin_emails=["admin@example.org", "Other@Example.org"],
            max_featured_slots=2,
        )
        for target in ("cms.dependencies.get_settings", "cms.admin_routes.get_settings"):
            patcher = patch(target, return_value=settings)
            patcher.start()
            self.addCleanup(patcher.stop)

        self.store = InMemoryContentStore()
        self.storage = InMemoryStorageClient()
        self.registry = EditorSessionRegistry()
        self.tracker = UploadTracker()
        verifier = StaticTokenVerifier(
            {
                "admin-token": "admin@example.org",
                "other-admin-token": "other@example.org",
                "visitor-token": "visitor@example.org",
            }
        )

        app = create_app()
        app.dependency_overrides[get_content_store] = lambda: self.store
        app.dependency_overrides[get_storage_client] = lambda: self.storage
        app.dependency_overrides[get_identity_verifier] = lambda: verifier
        app.dependency_overrides[get_editor_registry] = lambda: self.registry
        app.dependency_overrides[get_upload_tracker] = lambda: self.tracker
        self.client = TestClient(app)

    def seed_testimonials(self, *names):
        for index, name in enumerate(names):
            self.store.set(f"testimonials/{name}", {"name": name, "paragraph": "", "order": index})

    # Public site

    def test_whoami(self):
        anonymous = self.client.get("/api/auth/me").json()
        self.assertIsNone(anonymous["user"])
        self.assertFalse(anonymous["is_admin"])

        admin = self.client.get("/api/auth/me", headers=ADMIN).json()
        self.assertEqual(admin["user"]["email"], "admin@example.org")
        self.assertTrue(admin["is_admin"])

        other = self.client.get("/api/auth/me", headers=OTHER_ADMIN).json()
        self.assertTrue(other["is_admin"])

    def test_unsaved_page_renders_empty(self):
        response = self.client.get("/api/pages/events")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["content"]["paragraphs"], [])
        self.assertEqual(self.client.get("/api/pages/nope").status_code, 404)

    def test_events_page(self):
        self.store.set("events/gala", {"title": "Gala", "date": "2999-01-01"})
        self.store.set("events/fair", {"title": "Fair", "date": "2000-01-01"})
        payload = self.client.get("/api/events").json()
        self.assertEqual(
            [(e["event"]["id"], e["is_past"]) for e in payload["events"]],
            [("fair", True), ("gala", False)],
        )

    def test_store_failure_is_retryable_503(self):
        with patch.object(
            self.store, "list", side_effect=StoreUnavailableError("Listing events")
        ):
            response = self.client.get("/api/events")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["detail"], "Listing events failed, please retry")
        self.assertTrue(response.json()["retryable"])

    # Admin gate

    def test_admin_routes_require_admin(self):
        body = {"summary": "x"}
        self.assertEqual(self.client.put("/api/admin/pages/home", json=body).status_code, 401)
        self.assertEqual(
            self.client.put("/api/admin/pages/home", json=body, headers=VISITOR).status_code,
            403,
        )
        response = self.client.put("/api/admin/pages/home", json=body, headers=ADMIN)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get("/api/pages/home").json()["content"]["summary"], "x")

    # Collection editor

    def test_collection_editor_flow(self):
        self.seed_testimonials("A", "B")
        response = self.client.post("/api/admin/collections/testimonials/editor", headers=ADMIN)
        self.assertEqual(response.status_code, 201)
        session = response.json()
        sid = session["session_id"]
        self.assertFalse(session["dirty"])
        self.assertEqual([i["id"] for i in session["items"]], ["A", "B"])

        added = self.client.post(f"/api/admin/editors/{sid}/items", headers=ADMIN).json()
        new_id = added["selection"]
        self.assertTrue(added["dirty"])

        patched = self.client.patch(
            f"/api/admin/editors/{sid}/items/{new_id}",
            json={"fields": {"name": "Casey", "paragraph": "Great people"}},
            headers=ADMIN,
        ).json()
        self.assertEqual(patched["items"][-1]["name"], "Casey")

        reordered = self.client.post(
            f"/api/admin/editors/{sid}/reorder",
            json={"from_index": 2, "to_index": 0},
            headers=ADMIN,
        ).json()
        self.assertEqual([i["id"] for i in reordered["items"]], [new_id, "A", "B"])

        removed = self.client.delete(f"/api/admin/editors/{sid}/items/B", headers=ADMIN).json()
        self.assertEqual(removed["pending_deletes"], ["B"])

        commit = self.client.post(f"/api/admin/editors/{sid}/commit", headers=ADMIN)
        self.assertEqual(commit.status_code, 200)
        result = commit.json()
        self.assertEqual(result["written"], 2)
        self.assertEqual(result["deleted"], ["B"])
        self.assertFalse(result["session"]["dirty"])

        self.assertEqual(self.store.get(f"testimonials/{new_id}")["order"], 0)
        self.assertEqual(self.store.get("testimonials/A")["order"], 1)
        self.assertIsNone(self.store.get("testimonials/B"))

        public = self.client.get("/api/testimonials").json()
        self.assertEqual([t["name"] for t in public["testimonials"]], ["Casey", "A"])

    def test_editor_errors(self):
        self.seed_testimonials("A")
        sid = self.client.post(
            "/api/admin/collections/testimonials/editor", headers=ADMIN
        ).json()["session_id"]

        bad_field = self.client.patch(
            f"/api/admin/editors/{sid}/items/A", json={"fields": {"bogus": 1}}, headers=ADMIN
        )
        self.assertEqual(bad_field.status_code, 400)
        self.assertFalse(bad_field.json()["retryable"])

        bad_index = self.client.post(
            f"/api/admin/editors/{sid}/reorder",
            json={"from_index": 0, "to_index": 5},
            headers=ADMIN,
        )
        self.assertEqual(bad_index.status_code, 400)

        # Sessions belong to the admin who opened them.
        self.assertEqual(
            self.client.get(f"/api/admin/editors/{sid}", headers=OTHER_ADMIN).status_code, 404
        )
        self.assertEqual(
            self.client.post("/api/admin/collections/widgets/editor", headers=ADMIN).status_code,
            404,
        )

        self.assertEqual(self.client.delete(f"/api/admin/editors/{sid}", headers=ADMIN).status_code, 204)
        self.assertEqual(self.client.get(f"/api/admin/editors/{sid}", headers=ADMIN).status_code, 404)

    def test_editor_rejects_badly_typed_values(self):
        self.store.set("events/gala", {"title": "Gala", "date": "2025-01-01", "order": 0})
        sid = self.client.post(
            "/api/admin/collections/events/editor", headers=ADMIN
        ).json()["session_id"]

        for fields in ({"date": 20250101}, {"featured": None}, {"archived": "no"}):
            with self.subTest(fields=fields):
                response = self.client.patch(
                    f"/api/admin/editors/{sid}/items/gala",
                    json={"fields": fields},
                    headers=ADMIN,
                )
                self.assertEqual(response.status_code, 400)
        session = self.client.get(f"/api/admin/editors/{sid}", headers=ADMIN).json()
        self.assertFalse(session["dirty"])

        # A broken buffer would otherwise break commit and the public pages.
        committed = self.client.post(f"/api/admin/editors/{sid}/commit", headers=ADMIN)
        self.assertEqual(committed.status_code, 200)
        self.assertEqual(self.client.get("/api/events").status_code, 200)

        page_sid = self.client.post("/api/admin/pages/home/editor", headers=ADMIN).json()[
            "session_id"
        ]
        cleared = self.client.patch(
            f"/api/admin/editors/{page_sid}/content", json={"summary": None}, headers=ADMIN
        )
        self.assertEqual(cleared.status_code, 400)

    def test_cancel_discards_edits(self):
        self.seed_testimonials("A")
        sid = self.client.post(
            "/api/admin/collections/testimonials/editor", headers=ADMIN
        ).json()["session_id"]
        self.client.patch(
            f"/api/admin/editors/{sid}/items/A", json={"fields": {"name": "Z"}}, headers=ADMIN
        )
        cancelled = self.client.post(f"/api/admin/editors/{sid}/cancel", headers=ADMIN).json()
        self.assertFalse(cancelled["dirty"])
        self.assertEqual(cancelled["items"][0]["name"], "A")

    def test_item_slots(self):
        self.seed_testimonials("A")
        sid = self.client.post(
            "/api/admin/collections/testimonials/editor", headers=ADMIN
        ).json()["session_id"]
        self.client.post(f"/api/admin/editors/{sid}/slots", params={"item_id": "A"}, headers=ADMIN)
        response = self.client.put(
            f"/api/admin/editors/{sid}/slots/0",
            params={"item_id": "A"},
            json={"url": "https://x/a.jpg"},
            headers=ADMIN,
        )
        self.assertEqual(response.json()["items"][0]["featured"], ["https://x/a.jpg"])
        missing_item = self.client.post(f"/api/admin/editors/{sid}/slots", headers=ADMIN)
        self.assertEqual(missing_item.status_code, 400)

    # Page editor

    def test_page_editor_slots_and_commit(self):
        response = self.client.post("/api/admin/pages/gallery/editor", headers=ADMIN)
        self.assertEqual(response.status_code, 201)
        session = response.json()
        sid = session["session_id"]
        self.assertFalse(session["exists"])

        self.client.patch(
            f"/api/admin/editors/{sid}/content", json={"summary": "Photos"}, headers=ADMIN
        )
        self.client.post(f"/api/admin/editors/{sid}/slots", headers=ADMIN)
        self.client.post(f"/api/admin/editors/{sid}/slots", headers=ADMIN)
        over_limit = self.client.post(f"/api/admin/editors/{sid}/slots", headers=ADMIN)
        self.assertEqual(over_limit.status_code, 400)

        self.client.put(
            f"/api/admin/editors/{sid}/slots/1", json={"url": "https://x/b.jpg"}, headers=ADMIN
        )
        swapped = self.client.post(
            f"/api/admin/editors/{sid}/slots/reorder",
            json={"from_index": 1, "to_index": 0},
            headers=ADMIN,
        ).json()
        self.assertEqual(swapped["content"]["featured"], ["https://x/b.jpg", ""])
        self.assertTrue(swapped["dirty"])

        committed = self.client.post(f"/api/admin/editors/{sid}/commit", headers=ADMIN).json()
        self.assertTrue(committed["session"]["exists"])
        self.assertFalse(committed["session"]["dirty"])
        stored = self.store.get("pages/gallery")
        self.assertEqual(stored["summary"], "Photos")
        self.assertEqual(stored["featured"], ["https://x/b.jpg", ""])

    # Gallery

    def test_gallery_upload_and_delete(self):
        created = self.client.post(
            "/api/admin/gallery/groups",
            json={"title": "Picnic", "date": "2024-05-01"},
            headers=ADMIN,
        )
        self.assertEqual(created.status_code, 201)
        group_id = created.json()["id"]
        self.assertEqual(created.json()["description"], "Picnic highlights")

        upload = self.client.post(
            f"/api/admin/gallery/groups/{group_id}/photos",
            files=[
                ("files", ("a.jpg", b"aaaa", "image/jpeg")),
                ("files", ("b.jpg", b"bbbb", "image/jpeg")),
            ],
            headers=ADMIN,
        )
        self.assertEqual(upload.status_code, 200)
        self.assertEqual([u["state"] for u in upload.json()["uploads"]], ["done", "done"])

        photos = self.client.get(
            f"/api/admin/gallery/groups/{group_id}/photos", headers=ADMIN
        ).json()
        self.assertEqual(photos["group"]["size"], 2)
        self.assertEqual([p["name"] for p in photos["photos"]], ["Picnic 1", "Picnic 2"])

        choices = self.client.get("/api/admin/photo-choices", headers=ADMIN).json()
        self.assertEqual(len(choices["groups"][0]["photos"]), 2)

        gallery = self.client.get("/api/gallery").json()
        self.assertEqual(gallery["groups"][0]["cover"], photos["photos"][0]["url"])

        dashboard = self.client.get("/api/admin/dashboard", headers=ADMIN).json()
        self.assertEqual(dashboard["groups"][0]["size"], 2)
        self.assertEqual(dashboard["unavailable"], [])

        deleted = self.client.delete(f"/api/admin/gallery/groups/{group_id}", headers=ADMIN)
        self.assertEqual(deleted.json()["photos_deleted"], 2)
        self.assertEqual(self.storage.stored_objects, {})
        self.assertEqual(self.client.get(f"/api/gallery/{group_id}").status_code, 404)

    def test_create_group_validation(self):
        response = self.client.post(
            "/api/admin/gallery/groups", json={"title": ""}, headers=ADMIN
        )
        self.assertEqual(response.status_code, 422)


if __name__ == "__main__":
    unittest.main()
