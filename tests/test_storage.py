"""
Tests for PersistentStorage – tokens, persisted sessions and cleanup.
"""

import json
import tempfile
import unittest
from pathlib import Path

from cmru_api.storage import PersistentStorage


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


class StorageTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name) / "store"
        self.clock = FakeClock()
        self.storage = PersistentStorage(self.dir, token_ttl=3600, clock=self.clock)

    def tearDown(self):
        self._tmp.cleanup()

    def reopen(self):
        return PersistentStorage(self.dir, token_ttl=3600, clock=self.clock)


class TestTokens(StorageTestCase):
    def test_issue_and_get(self):
        token, expires_at = self.storage.issue_token("6512", "bus")
        self.assertEqual(expires_at, self.clock.now + 3600)
        self.assertGreaterEqual(len(token), 32)
        record = self.storage.get_token(token)
        self.assertEqual((record["owner"], record["backend"]), ("6512", "bus"))

    def test_tokens_are_unique(self):
        first, _ = self.storage.issue_token("6512", "bus")
        second, _ = self.storage.issue_token("6512", "bus")
        self.assertNotEqual(first, second)

    def test_unknown_token(self):
        self.assertIsNone(self.storage.get_token("nope"))

    def test_expired_token_is_dropped(self):
        token, _ = self.storage.issue_token("6512", "bus")
        self.clock.now += 3600
        self.assertIsNone(self.storage.get_token(token))
        self.assertEqual(self.storage.stats()["tokens"], 0)

    def test_survives_restart(self):
        token, _ = self.storage.issue_token("6512", "reg")
        self.assertEqual(self.reopen().get_token(token)["backend"], "reg")

    def test_expired_tokens_dropped_on_load(self):
        self.storage.issue_token("6512", "bus")
        self.clock.now += 7200
        self.assertEqual(self.reopen().stats()["tokens"], 0)

    def test_delete_token(self):
        token, _ = self.storage.issue_token("6512", "bus")
        self.assertTrue(self.storage.delete_token(token))
        self.assertFalse(self.storage.delete_token(token))

    def test_delete_tokens_for_owner_and_backend(self):
        bus_token, _ = self.storage.issue_token("6512", "bus")
        self.storage.issue_token("6512", "bus")
        reg_token, _ = self.storage.issue_token("6512", "reg")
        self.assertEqual(self.storage.delete_tokens_for("6512", "bus"), 2)
        self.assertIsNone(self.storage.get_token(bus_token))
        self.assertIsNotNone(self.storage.get_token(reg_token))

    def test_cleanup_expired_tokens(self):
        self.storage.issue_token("a", "bus")
        self.clock.now += 1800
        self.storage.issue_token("b", "bus")
        self.clock.now += 1800
        self.assertEqual(self.storage.cleanup_expired_tokens(), 1)
        self.assertEqual(self.storage.stats()["tokens"], 1)


class TestSessions(StorageTestCase):
    RECORD = {
        "owner": "6512",
        "backend": "bus",
        "cookies": ["SESS=abc"],
        "created_at": 1_000_000.0,
        "last_validated_at": 1_000_000.0,
        "one_click": True,
    }

    def test_persist_and_load(self):
        self.storage.persist_session("bus:6512", self.RECORD)
        self.assertEqual(self.reopen().load_session("bus:6512"), self.RECORD)

    def test_unknown_fields_not_written(self):
        self.storage.persist_session("bus:6512", dict(self.RECORD, password="hunter2"))
        on_disk = json.loads(self.storage.session_file.read_text(encoding="utf-8"))
        self.assertNotIn("password", on_disk["bus:6512"])
        self.assertNotIn("hunter2", self.storage.session_file.read_text(encoding="utf-8"))

    def test_delete_session(self):
        self.storage.persist_session("bus:6512", self.RECORD)
        self.storage.delete_session("bus:6512")
        self.storage.delete_session("bus:6512")
        self.assertIsNone(self.reopen().load_session("bus:6512"))

    def test_cleanup_old_sessions(self):
        self.storage.persist_session("bus:old", self.RECORD)
        self.storage.persist_session(
            "bus:new", dict(self.RECORD, last_validated_at=self.clock.now + 500)
        )
        self.clock.now += 1000
        self.assertEqual(self.storage.cleanup_old_sessions(max_age=600), 1)
        self.assertIsNone(self.storage.load_session("bus:old"))
        self.assertIsNotNone(self.storage.load_session("bus:new"))

    def test_corrupt_file_starts_empty(self):
        self.storage.session_file.write_text("{not json", encoding="utf-8")
        self.assertIsNone(self.reopen().load_session("bus:6512"))


if __name__ == "__main__":
    unittest.main()
