"""
Network operations module for HTTP client setup and request retries.
"""

from cmru_api.network.client import build_session, decode_body, random_headers
from cmru_api.network.retry import LoginTimeoutError, retry_on_timeout

__all__ = [
    "build_session",
    "decode_body",
    "random_headers",
    "LoginTimeoutError",
    "retry_on_timeout",
]
