"""
cmru_api
========
JSON REST proxy for the CMRU bus reservation portal and the CMRU student
registrar.  Logs users into the legacy cookie-based portals, keeps their
sessions alive and turns the HTML pages into JSON.

Package structure
-----------------
cmru_api/
├── __init__.py       – package init and version
├── config.py         – configuration constants and env overrides
├── logging_setup.py  – ``cmru-api`` logger, colorlog formatting
├── errors.py         – exception types and the error-classification table
├── cookies.py        – Set-Cookie extraction, Cookie header formatting/merging
├── session.py        – Session / SessionConfig / SessionStore
├── executor.py       – AuthExecutor: single-flight login, authenticated calls
├── storage.py        – tokens.json / sessions.json persistence
├── server.py         – REST routes and ThreadingHTTPServer handler
├── cli.py            – argparse CLI (``python -m cmru_api``)
├── network/          – requests.Session factory, decoding, retry on timeout
├── auth/             – bus and registrar login protocols, expiry detection
├── parser/           – HTML → dataclass records
└── api/              – BusApi / RegistrarApi facades

Quick start
-----------
    from cmru_api.server import ApiService

    service = ApiService()
    key, session = service.bus.login("6512345678", "password")
    schedule = service.bus.get_schedule(key)
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
