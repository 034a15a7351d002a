import unittest

from cms.errors import StoreUnavailableError
from cms.store import SqlContentStore


class SqlContentStoreTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the SQL store.
    """

    def setUp(self):
        self.store = SqlContentStore("sqlite+pysqlite:///:memory:")

    def test_set_get_and_merge(self):
        self.store.set("pages/home", {"summary": "Hello", "banner": "Hi"})
        self.assertEqual(self.store.get("pages/home"), {"summary": "Hello", "banner": "Hi"})

        self.store.set("pages/home", {"summary": "Updated"}, merge=True)
        self.assertEqual(self.store.get("pages/home"), {"summary": "Updated", "banner": "Hi"})

        self.store.set("pages/home", {"summary": "Replaced"})
        self.assertEqual(self.store.get("pages/home"), {"summary": "Replaced"})

    def test_missing_document(self):
        self.assertIsNone(self.store.get("pages/none"))

    def test_list_sorts_and_counts(self):
        self.store.set("testimonials/b", {"name": "B", "order": 1})
        self.store.set("testimonials/a", {"name": "A", "order": 0})
        self.store.set("testimonials/z", {"name": "Z"})
        records = self.store.list("testimonials", order_by="order")
        self.assertEqual([r.id for r in records], ["a", "b", "z"])
        records = self.store.list("testimonials", order_by="order", descending=True)
        self.assertEqual([r.id for r in records], ["b", "a", "z"])
        self.assertEqual(self.store.count("testimonials"), 3)
        self.assertEqual(self.store.count("events"), 0)

    def test_subcollections_are_separate(self):
        self.store.set("galleryGroups/g1", {"title": "One"})
        self.store.set("galleryGroups/g1/photos/p1", {"url": "u"})
        self.assertEqual([r.id for r in self.store.list("galleryGroups")], ["g1"])
        self.assertEqual(self.store.count("galleryGroups/g1/photos"), 1)

    def test_batch_applies_together(self):
        self.store.set("events/old", {"title": "Old"})
        batch = self.store.batch()
        batch.set("events/new", {"title": "New"})
        batch.set("events/new", {"order": 0}, merge=True)
        batch.delete("events/old")
        batch.commit()
        self.assertEqual(self.store.get("events/new"), {"title": "New", "order": 0})
        self.assertIsNone(self.store.get("events/old"))

    def test_rejects_bad_paths(self):
        with self.assertRaises(ValueError):
            self.store.set("pages", {"summary": "x"})

    def test_engine_errors_are_wrapped(self):
        store = SqlContentStore("sqlite+pysqlite:///:memory:")
        with store.engine.begin() as conn:
            conn.exec_driver_sql("DROP TABLE documents")
        with self.assertRaises(StoreUnavailableError):
            store.get("pages/home")


if __name__ == "__main__":
    unittest.main()
