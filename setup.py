"""
Setup configuration for AUTOREST_ENGINE package.
"""

from pathlib import Path

from setuptools import find_packages, setup

# Read README for long description
readme_file = Path(__file__).parent / "README.md"
long_description = ""
if readme_file.exists():
    long_description = readme_file.read_text(encoding="utf-8")

setup(
    name="autorest-engine",
    version="0.2.0",
    description="Auto-REST engine: REST endpoints with field and row policies over SQL and MongoDB",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "motor>=3.0.0",
        "pymongo>=4.0.0",
        "fastapi>=0.100.0",
        "pydantic>=2.0.0",
        "jsonschema>=4.0.0",
        "sqlalchemy[asyncio]>=2.0.0",
        "cryptography>=41.0.0",
        "click>=8.0.0",
        "uvicorn>=0.23.0",
    ],
    extras_require={
        "postgres": ["asyncpg>=0.28.0"],
        "mysql": ["aiomysql>=0.2.0"],
        "mssql": ["aioodbc>=0.5.0"],
        "sqlite": ["aiosqlite>=0.19.0"],
        "all": [
            "asyncpg>=0.28.0",
            "aiomysql>=0.2.0",
            "aioodbc>=0.5.0",
            "aiosqlite>=0.19.0",
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "httpx>=0.24.0",
            "aiosqlite>=0.19.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "autorest=autorest_engine.cli.main:cli",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: GNU Affero General Public License v3 or later (AGPLv3+)",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Database",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
    keywords="rest api database introspection sqlalchemy mongodb row-level-security",
    include_package_data=True,
)
