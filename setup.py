"""Package setup for cmru_api."""

from setuptools import setup, find_packages

setup(
    name="cmru-api",
    version="1.0.0",
    description="JSON REST proxy for the CMRU bus reservation and registrar portals",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "requests>=2.31.0",
        "beautifulsoup4>=4.12.0",
        "lxml>=5.0.0",
        "urllib3>=2.0.0",
    ],
    extras_require={
        "ui": [
            "colorlog>=6.8.0",
        ],
        "test": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "cmru-api=cmru_api.cli:main",
        ],
    },
)
