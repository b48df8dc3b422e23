import unittest
from unittest.mock import MagicMock

from catalog.db import InMemoryDbClient
from catalog.errors import (
    RecordServiceError,
    StoreError,
    StoreErrorKind,
    WriteConflictError,
)
from catalog.service import (
    UPDATE_MAX_ATTEMPTS,
    UPDATE_RETRY_DELAY_SECONDS,
    RecordService,
)
from catalog.storage import InMemoryStorageClient


def _conflict() -> StoreError:
    return StoreError(StoreErrorKind.CONFLICT, "write conflict")


class RecordServiceTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.storage = InMemoryStorageClient()
        self.sleeps = []
        self.service = RecordService(self.db, self.storage, sleep=self.sleeps.append)

    def test_create_ignores_client_ids(self):
        created = self.service.create(
            {"name": "Whiskers", "id": "client-supplied", "_id": "other"}
        )
        self.assertEqual(created["name"], "Whiskers")
        self.assertNotEqual(created["id"], "client-supplied")
        self.assertNotIn("_id", created)
        self.assertIn(created["id"], self.db.records)

    def test_list_is_capped_at_100(self):
        for i in range(105):
            self.db.create_record({"name": f"cat {i}"})
        self.assertEqual(len(self.service.list_all()), 100)

    def test_search_is_case_insensitive_and_sorted(self):
        for name in ("Whiskers", "Tiger", "WHALE"):
            self.db.create_record({"name": name})

        results = self.service.search("wh")
        self.assertEqual([r["name"] for r in results], ["WHALE", "Whiskers"])

    def test_search_defaults_to_all_and_caps_at_10(self):
        for i in range(12):
            self.db.create_record({"name": f"cat {i:02d}"})
        results = self.service.search()
        self.assertEqual(len(results), 10)
        self.assertEqual(results[0]["name"], "cat 00")

    def test_update_applies_partial_fields(self):
        created = self.db.create_record({"name": "Whiskers", "age": 3})
        updated = self.service.update(
            created["id"], {"id": "nope", "_id": "nope", "age": 4}
        )
        self.assertEqual(updated["id"], created["id"])
        self.assertEqual(updated["name"], "Whiskers")
        self.assertEqual(updated["age"], 4)
        self.assertEqual(self.sleeps, [])

    def test_update_retries_conflicts_then_succeeds(self):
        db = MagicMock()
        db.update_record.side_effect = [
            _conflict(),
            _conflict(),
            {"id": "abc", "name": "Tom"},
        ]
        service = RecordService(db, self.storage, sleep=self.sleeps.append)

        updated = service.update("abc", {"name": "Tom"})

        self.assertEqual(updated, {"id": "abc", "name": "Tom"})
        self.assertEqual(db.update_record.call_count, 3)
        self.assertEqual(self.sleeps, [UPDATE_RETRY_DELAY_SECONDS] * 2)

    def test_update_gives_up_after_three_conflicts(self):
        db = MagicMock()
        db.update_record.side_effect = _conflict()
        service = RecordService(db, self.storage, sleep=self.sleeps.append)

        with self.assertRaises(WriteConflictError) as ctx:
            service.update("abc", {"name": "Tom"})

        self.assertEqual(ctx.exception.status_code, 409)
        self.assertEqual(db.update_record.call_count, UPDATE_MAX_ATTEMPTS)
        # No delay after the final attempt.
        self.assertEqual(len(self.sleeps), UPDATE_MAX_ATTEMPTS - 1)

    def test_update_other_errors_fail_immediately(self):
        db = MagicMock()
        db.update_record.side_effect = StoreError(StoreErrorKind.OTHER, "boom")
        service = RecordService(db, self.storage, sleep=self.sleeps.append)

        with self.assertRaises(RecordServiceError) as ctx:
            service.update("abc", {"name": "Tom"})

        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(ctx.exception.to_dict(), {"error": "Failed to update record"})
        self.assertEqual(db.update_record.call_count, 1)
        self.assertEqual(self.sleeps, [])

    def test_update_missing_record_is_generic_failure(self):
        with self.assertRaises(RecordServiceError):
            self.service.update("missing", {"name": "Tom"})

    def test_delete_removes_record_and_image(self):
        url = self.storage.put("https://cdn.example/cats/whiskers.png")
        created = self.db.create_record({"name": "Whiskers", "imageUrl": url})

        deleted = self.service.delete(created["id"])

        self.assertEqual(deleted["id"], created["id"])
        self.assertNotIn(created["id"], self.db.records)
        self.assertEqual(self.storage.deleted, [url])
        self.assertNotIn(url, self.storage.stored_objects)

    def test_delete_without_image_skips_storage(self):
        created = self.db.create_record({"name": "Tiger"})
        self.service.delete(created["id"])
        self.assertEqual(self.storage.deleted, [])

    def test_delete_succeeds_when_image_cleanup_fails(self):
        self.storage.fail_on_delete = True
        created = self.db.create_record(
            {"name": "Whiskers", "imageUrl": "https://cdn.example/w.png"}
        )

        with self.assertLogs("catalog.service", level="ERROR"):
            deleted = self.service.delete(created["id"])

        self.assertEqual(deleted["name"], "Whiskers")
        self.assertNotIn(created["id"], self.db.records)

    def test_delete_missing_record_never_calls_store_delete(self):
        db = MagicMock()
        db.find_record.return_value = None
        service = RecordService(db, self.storage)

        with self.assertRaises(RecordServiceError) as ctx:
            service.delete("missing")

        self.assertEqual(ctx.exception.message, "Failed to delete record")
        db.delete_record.assert_not_called()
        self.assertEqual(self.storage.deleted, [])

    def test_store_failures_carry_details(self):
        db = MagicMock()
        db.create_record.side_effect = StoreError(StoreErrorKind.UNAVAILABLE, "db down")
        db.list_records.side_effect = StoreError(StoreErrorKind.UNAVAILABLE, "db down")
        db.search_records.side_effect = StoreError(StoreErrorKind.OTHER, "bad query")
        service = RecordService(db, self.storage)

        cases = [
            (lambda: service.create({"name": "x"}), "Failed to create record", "db down"),
            (service.list_all, "Failed to fetch records", "db down"),
            (lambda: service.search("x"), "Search failed", "bad query"),
        ]
        for call, error, details in cases:
            with self.subTest(error=error):
                with self.assertRaises(RecordServiceError) as ctx:
                    call()
                self.assertEqual(
                    ctx.exception.to_dict(), {"error": error, "details": details}
                )


if __name__ == "__main__":
    unittest.main()
