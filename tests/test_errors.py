"""
Tests for the error taxonomy – rule order, normalised messages, idempotence.
"""

import unittest

import requests

from cmru_api.errors import (
    AUTH_REQUIRED_MESSAGE,
    NETWORK_MESSAGE,
    SESSION_EXPIRED_MESSAGE,
    AccountBlockedError,
    ClassifiedError,
    ErrorCategory,
    LoginError,
    PartialSuccessError,
    ValidationError,
    classify,
    find_rejection_phrase,
)
from cmru_api.network.retry import LoginTimeoutError


class TestClassify(unittest.TestCase):
    def test_passthrough_returns_same_object(self):
        err = ClassifiedError("custom", 418, ErrorCategory.SERVER)
        self.assertIs(classify(err), err)

    def test_wrong_credentials_phrase(self):
        err = classify(LoginError("Login failed: กรุณาป้อนรหัสประจำตัวและรหัสผ่านให้ถูกต้อง"))
        self.assertEqual(err.category, ErrorCategory.AUTH)
        self.assertEqual(err.status, 401)

    def test_too_many_attempts_beats_login_failed(self):
        # "Login failed" alone is a 401; the literal phrase must win
        err = classify(LoginError("Login failed: ใส่รหัสผ่านผิดเกินจำนวนครั้งที่กำหนด"))
        self.assertEqual(err.category, ErrorCategory.AUTH)
        self.assertEqual(err.status, 429)

    def test_invalid_username_or_password(self):
        err = classify(LoginError("Login failed - invalid username or password"))
        self.assertEqual((err.category, err.status), (ErrorCategory.AUTH, 401))
        self.assertEqual(err.message, "Login failed - invalid username or password")

    def test_blocked_account_is_auth(self):
        err = classify(AccountBlockedError("Login failed: wrong campus"))
        self.assertEqual(err.category, ErrorCategory.AUTH)

    def test_session_expired_is_normalised(self):
        err = classify(RuntimeError("Session expired - received login page instead of schedule data"))
        self.assertEqual(err.category, ErrorCategory.SESSION)
        self.assertEqual(err.status, 401)
        self.assertEqual(err.message, SESSION_EXPIRED_MESSAGE)

    def test_no_credentials_is_auth_required(self):
        err = classify("No credentials available for auto re-login")
        self.assertEqual((err.category, err.status), (ErrorCategory.AUTH, 401))
        self.assertEqual(err.message, AUTH_REQUIRED_MESSAGE)

    def test_no_authentication_cookies(self):
        err = classify("No authentication cookies available. Please login first.")
        self.assertEqual(err.message, AUTH_REQUIRED_MESSAGE)

    def test_timeout_is_network(self):
        err = classify(LoginTimeoutError("Bus login check timeout after 3 attempt(s)"))
        self.assertEqual((err.category, err.status), (ErrorCategory.NETWORK, 503))
        self.assertEqual(err.message, NETWORK_MESSAGE)

    def test_requests_connection_error_is_network(self):
        exc = requests.ConnectionError(
            "HTTPSConnectionPool(host='x', port=443): Max retries exceeded with url: /"
        )
        self.assertEqual(classify(exc).category, ErrorCategory.NETWORK)

    def test_econnrefused_is_network(self):
        self.assertEqual(classify("connect ECONNREFUSED 127.0.0.1:443").category,
                         ErrorCategory.NETWORK)

    def test_unexpected_status_is_server(self):
        err = classify("Unexpected response status: 500")
        self.assertEqual((err.category, err.status), (ErrorCategory.SERVER, 502))
        self.assertEqual(err.message, "Unexpected response status: 500")

    def test_failed_to_is_server(self):
        err = classify("Failed to obtain session cookies from login")
        self.assertEqual(err.category, ErrorCategory.SERVER)

    def test_unknown(self):
        err = classify(ValueError("something odd"))
        self.assertEqual((err.category, err.status), (ErrorCategory.UNKNOWN, 500))
        self.assertEqual(err.message, "something odd")

    def test_empty_message_uses_type_name(self):
        self.assertEqual(classify(KeyError()).message, "KeyError")

    def test_cause_is_kept(self):
        exc = RuntimeError("boom")
        self.assertIs(classify(exc).__cause__, exc)

    def test_idempotent_on_message(self):
        samples = [
            LoginError("Login failed: กรุณากรอกรหัสผู้ใช้และรหัสผ่านให้ถูกต้อง"),
            LoginError("Login failed: ใส่รหัสผ่านผิดเกินจำนวนครั้งที่กำหนด"),
            LoginError("Login failed - invalid username or password"),
            RuntimeError("Session expired or invalid. Please login again."),
            RuntimeError("No credentials available for auto re-login"),
            requests.Timeout("Read timed out. (read timeout=30)"),
            RuntimeError("Unexpected response status: 503"),
            RuntimeError("weird"),
        ]
        for exc in samples:
            with self.subTest(exc=exc):
                first = classify(exc)
                again = classify(first.message)
                self.assertEqual(
                    (again.message, again.status, again.category),
                    (first.message, first.status, first.category),
                )


class TestClassifiedErrorBodies(unittest.TestCase):
    def test_to_dict(self):
        err = ClassifiedError("nope", 401, ErrorCategory.AUTH)
        self.assertEqual(err.to_dict(), {"error": "nope", "errorType": "auth"})

    def test_validation_error(self):
        err = ValidationError("Username and password are required")
        self.assertEqual((err.status, err.category), (400, ErrorCategory.VALIDATION))

    def test_partial_success_body(self):
        secondary = classify("Failed to confirm reservation: 500")
        err = PartialSuccessError("Bus booked but could not be confirmed", {"booking_id": "7"}, secondary)
        self.assertEqual(err.status, 207)
        body = err.to_dict()
        self.assertEqual(body["errorType"], "partial")
        self.assertEqual(body["primaryResult"], {"booking_id": "7"})
        self.assertEqual(body["secondaryError"]["errorType"], "server")


class TestFindRejectionPhrase(unittest.TestCase):
    def test_found(self):
        html = "<script>alert('กรุณาป้อนรหัสประจำตัวและรหัสผ่านให้ถูกต้อง')</script>"
        self.assertEqual(find_rejection_phrase(html), "กรุณาป้อนรหัสประจำตัวและรหัสผ่านให้ถูกต้อง")

    def test_not_found(self):
        self.assertIsNone(find_rejection_phrase("<html>welcome</html>"))


if __name__ == "__main__":
    unittest.main()
