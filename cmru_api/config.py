"""Configuration constants for the CMRU portal API proxy."""

import os
from pathlib import Path

# Backend portals.  Both can be pointed elsewhere (e.g. a staging mirror).
BUS_BASE_URL = os.environ.get("CMRU_BUS_URL", "https://cmrubus.cmru.ac.th").rstrip("/")
REG_BASE_URL = os.environ.get("CMRU_REG_URL", "https://reg.cmru.ac.th").rstrip("/")

# Bus portal endpoints
BUS_LOGIN_PAGE      = "/"
BUS_LOGIN_CHECK     = "/user/userloginchk"
BUS_SCHEDULE        = "/users/schedule/showall"
BUS_AVAILABLE       = "/schedule/showevent"
BUS_BOOK            = "/schedule/saveschereserv"
BUS_CONFIRM         = "/users/schedule/confirmreserv"
BUS_UNCONFIRM       = "/users/schedule/unconfirmreserv"

# Registrar endpoints
REG_LOGIN_PAGE      = "/registrar/login.asp"
REG_VALIDATE        = "/registrar/validate.asp"
REG_STUDENT         = "/registrar/student.asp"
REG_TIMETABLE       = "/registrar/time_table.asp"

# The portals emit Thai-locale bytes (windows-874); Python calls it cp874.
PORTAL_ENCODING = "cp874"

# Delimiter the bus portal uses inside its ``data=`` payloads
BUS_FIELD_DELIMITER = ":||:"
BUS_DEFAULT_USER_TYPE = 1

REQUEST_TIMEOUT       = float(os.environ.get("CMRU_REQUEST_TIMEOUT", "30"))  # seconds per HTTP call
CONNECT_RETRIES       = 2      # urllib3 retries for connection establishment only
LOGIN_RETRIES         = 3      # attempts per login protocol on transport timeouts
LOGIN_BACKOFF_SECONDS = 1.0    # linear backoff: attempt * LOGIN_BACKOFF_SECONDS

BUS_SESSION_VALIDITY = 5 * 60   # seconds
REG_SESSION_VALIDITY = 10 * 60  # seconds

# Bus login check response codes.  Anything not listed here is a failure.
BUS_LOGIN_SUCCESS_CODES = frozenset({"1"})
BUS_LOGIN_BLOCKED_CODES = {
    "3": "Staff account must update personal data on the bus portal before it can be used",
    "4": "This account is registered at a different campus and cannot use this bus service",
}

# Redirect targets that mean "you are anonymous again"
BUS_LANDING_LOCATIONS = frozenset({"/", BUS_BASE_URL + "/", BUS_BASE_URL})
REG_LANDING_LOCATIONS = frozenset({REG_LOGIN_PAGE, REG_BASE_URL + REG_LOGIN_PAGE})

# Landing-page content markers.  The bus check needs the title without the
# reservation list; the registrar login form always carries BUILDKEY.
BUS_LOGIN_MARKERS     = ("userloginchk",)
BUS_LANDING_TITLE     = "ระบบจองการใช้บริการรถรับ-ส่ง"
BUS_RESERVATION_LIST  = "รายการจอง"
REG_LOGIN_MARKERS     = ("BUILDKEY", "f_pwd")

# REST server
DEFAULT_HOST = os.environ.get("HOST", "localhost")
DEFAULT_PORT = int(os.environ.get("PORT", "3000"))
TOKEN_TTL    = int(os.environ.get("CMRU_TOKEN_TTL", str(7 * 24 * 60 * 60)))  # seconds

# Persistence
STORAGE_DIR          = Path(os.environ.get("CMRU_API_STORAGE", "CMRU_API_STORAGE"))
TOKEN_STORAGE_FILE   = "tokens.json"
SESSION_STORAGE_FILE = "sessions.json"
SESSION_MAX_AGE      = 7 * 24 * 60 * 60   # persisted sessions older than this are dropped
CLEANUP_INTERVAL     = 30 * 60            # seconds between storage cleanups
