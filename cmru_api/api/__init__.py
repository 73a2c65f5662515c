"""
Portal facades: authenticated page fetches, parsing and bus booking actions.
"""

from cmru_api.api.bus import BookingResult, BusApi
from cmru_api.api.registrar import RegistrarApi

__all__ = ["BookingResult", "BusApi", "RegistrarApi"]
