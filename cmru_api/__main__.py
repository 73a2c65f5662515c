"""
Main entry point for the cmru_api package.

Allows running the server as: python -m cmru_api
"""

from cmru_api.cli import main

if __name__ == "__main__":
    main()
