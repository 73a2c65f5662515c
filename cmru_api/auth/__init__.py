"""
Authentication module for the two portal login protocols and session-expiry
detection.
"""

from cmru_api.auth import bus, registrar
from cmru_api.auth.session import (
    is_bus_session_expired,
    is_registrar_session_expired,
    redirect_location,
)

__all__ = [
    "bus",
    "registrar",
    "is_bus_session_expired",
    "is_registrar_session_expired",
    "redirect_location",
]
