"""
Tests for SessionStore: validity window, touch, invalidate, clear and the
pending-login slot.
"""

import unittest

from cmru_api.errors import ClassifiedError, ErrorCategory
from cmru_api.session import SessionConfig, SessionKind, SessionStore


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestSessionConfig(unittest.TestCase):
    def test_defaults_per_kind(self):
        bus = SessionConfig.for_kind(SessionKind.BUS)
        reg = SessionConfig.for_kind("reg")
        self.assertEqual((bus.validity, bus.auto_relogin), (300, True))
        self.assertEqual((reg.validity, reg.auto_relogin), (600, False))

    def test_handle_without_config_follows_key_prefix(self):
        store = SessionStore(clock=FakeClock())
        store.set_session("reg:u1", "u1", "pw", ["ASPSESSIONIDX=a"])
        store.get_or_create("bus:u2")
        reg = store.get_handle("reg:u1").config
        bus = store.get_handle("bus:u2").config
        self.assertEqual((reg.kind, reg.validity, reg.auto_relogin),
                         (SessionKind.REGISTRAR, 600, False))
        self.assertEqual((bus.kind, bus.validity, bus.auto_relogin),
                         (SessionKind.BUS, 300, True))
        self.assertIs(store.get_session("reg:u1").kind, SessionKind.REGISTRAR)

    def test_bare_default_is_bus(self):
        config = SessionConfig()
        self.assertEqual((config.kind, config.validity), (SessionKind.BUS, 300))


class TestValidity(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.store = SessionStore(clock=self.clock)
        self.store.get_or_create("bus:u1", SessionConfig.for_bus())

    def test_unknown_key_is_invalid(self):
        self.assertFalse(self.store.is_valid("bus:nobody"))

    def test_valid_within_window(self):
        self.store.set_session("bus:u1", "u1", "pw", ["SESS=abc"])
        self.clock.now += 299
        self.assertTrue(self.store.is_valid("bus:u1"))

    def test_invalid_at_window_edge(self):
        self.store.set_session("bus:u1", "u1", "pw", ["SESS=abc"])
        self.clock.now += 300
        self.assertFalse(self.store.is_valid("bus:u1"))

    def test_no_cookies_is_invalid(self):
        self.store.set_session("bus:u1", "u1", "pw", [])
        self.assertFalse(self.store.is_valid("bus:u1"))

    def test_touch_extends_window(self):
        self.store.set_session("bus:u1", "u1", "pw", ["SESS=abc"])
        self.clock.now += 200
        self.store.touch("bus:u1")
        self.clock.now += 200
        self.assertTrue(self.store.is_valid("bus:u1"))

    def test_touch_never_goes_backwards(self):
        self.store.set_session("bus:u1", "u1", "pw", ["SESS=abc"])
        before = self.store.get_session("bus:u1").last_validated_at
        self.clock.now -= 50
        self.store.touch("bus:u1")
        self.assertEqual(self.store.get_session("bus:u1").last_validated_at, before)

    def test_touch_does_not_create(self):
        self.store.touch("bus:ghost")
        self.assertIsNone(self.store.get_session("bus:ghost"))

    def test_validated_at_is_capped_by_now(self):
        session = self.store.set_session(
            "bus:u1", "u1", None, ["SESS=abc"], validated_at=self.clock.now + 500
        )
        self.assertEqual(session.last_validated_at, self.clock.now)

    def test_one_click_carried_over_on_reinstall(self):
        self.store.set_session("bus:u1", "u1", "pw", ["A=1"], one_click=True)
        session = self.store.set_session("bus:u1", "u1", "pw", ["A=2"])
        self.assertTrue(session.one_click)


class TestInvalidateAndClear(unittest.TestCase):
    def setUp(self):
        self.store = SessionStore(clock=FakeClock())
        self.store.set_session("bus:u1", "u1", "pw", ["SESS=abc"])

    def test_invalidate_keeps_credentials(self):
        self.store.invalidate("bus:u1")
        self.assertFalse(self.store.is_valid("bus:u1"))
        self.assertIsNone(self.store.get_cookies("bus:u1"))
        self.assertEqual(self.store.get_credentials("bus:u1"), ("u1", "pw"))

    def test_clear_removes_everything(self):
        self.store.clear("bus:u1")
        self.assertIsNone(self.store.get_handle("bus:u1"))
        self.assertIsNone(self.store.get_credentials("bus:u1"))

    def test_clear_unknown_key_is_noop(self):
        self.store.clear("bus:nobody")

    def test_clear_fails_pending_login(self):
        future, is_owner = self.store.begin_login("bus:u1")
        self.assertTrue(is_owner)
        self.store.clear("bus:u1")
        with self.assertRaises(ClassifiedError) as ctx:
            future.result(timeout=1)
        self.assertEqual(ctx.exception.category, ErrorCategory.SESSION)

    def test_finish_after_clear_installs_nothing(self):
        future, _ = self.store.begin_login("bus:u1")
        self.store.clear("bus:u1")
        self.assertIsNone(self.store.finish_login("bus:u1", future, "u1", "pw", ["NEW=1"]))
        self.assertIsNone(self.store.get_session("bus:u1"))

    def test_clear_all(self):
        self.store.set_session("reg:u2", "u2", "pw", ["R=1"])
        self.store.clear_all()
        self.assertEqual(self.store.active_keys(), [])

    def test_set_one_click_without_session(self):
        self.assertFalse(self.store.set_one_click("bus:nobody", True))
        self.assertTrue(self.store.set_one_click("bus:u1", True))
        self.assertTrue(self.store.get_session("bus:u1").one_click)


class TestPendingLogin(unittest.TestCase):
    def setUp(self):
        self.store = SessionStore(clock=FakeClock())

    def test_second_claim_gets_same_future(self):
        first, owner1 = self.store.begin_login("bus:u1")
        second, owner2 = self.store.begin_login("bus:u1")
        self.assertTrue(owner1)
        self.assertFalse(owner2)
        self.assertIs(first, second)

    def test_finish_resolves_waiters_and_frees_slot(self):
        future, _ = self.store.begin_login("bus:u1")
        session = self.store.finish_login("bus:u1", future, "u1", "pw", ["SESS=abc"])
        self.assertIs(future.result(timeout=1), session)
        self.assertFalse(self.store.get_handle("bus:u1").login_in_progress)
        self.assertTrue(self.store.is_valid("bus:u1"))

    def test_abort_rejects_waiters_and_clears_key(self):
        self.store.set_session("bus:u1", "u1", "pw", ["OLD=1"])
        future, _ = self.store.begin_login("bus:u1")
        error = ClassifiedError("nope", 401, ErrorCategory.AUTH)
        self.store.abort_login("bus:u1", future, error)
        with self.assertRaises(ClassifiedError) as ctx:
            future.result(timeout=1)
        self.assertIs(ctx.exception, error)
        self.assertIsNone(self.store.get_session("bus:u1"))

    def test_abort_of_stale_future_is_ignored(self):
        old, _ = self.store.begin_login("bus:u1")
        self.store.clear("bus:u1")
        new, owner = self.store.begin_login("bus:u1")
        self.assertTrue(owner)
        self.store.abort_login("bus:u1", old, RuntimeError("late"))
        self.assertTrue(self.store.get_handle("bus:u1").login_in_progress)
        self.assertFalse(new.done())

    def test_reuse_valid_hands_back_current_session(self):
        session = self.store.set_session("bus:u1", "u1", "pw", ["SESS=abc"])
        future, owner = self.store.begin_login("bus:u1", reuse_valid=True)
        self.assertFalse(owner)
        self.assertIs(future.result(timeout=0), session)
        self.assertFalse(self.store.get_handle("bus:u1").login_in_progress)

    def test_explicit_claim_ignores_valid_session(self):
        self.store.set_session("bus:u1", "u1", "pw", ["SESS=abc"])
        _, owner = self.store.begin_login("bus:u1")
        self.assertTrue(owner)


if __name__ == "__main__":
    unittest.main()
