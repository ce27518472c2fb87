#!/usr/bin/env python
"""Setup script for envcrypt."""

from setuptools import setup, find_packages
from pathlib import Path

# Read the README file
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding='utf-8')

setup(
    name="envcrypt",
    version="0.1.0",
    author="envcrypt contributors",
    description="Per-environment secret keys and AES-GCM encrypted test credentials in dotenv files",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(where=".", include=["envcrypt*"]),
    package_dir={"": "."},
    python_requires=">=3.9",
    install_requires=[
        # Cryptography (AES-GCM, Argon2id)
        "cryptography>=44.0.0",

        # Configuration and models
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "python-dotenv>=1.0.0",

        # Error handling
        "returns>=0.19.0",

        # Logging and console output
        "structlog>=23.0.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
            "pytest-mock>=3.11.0",
            "pytest-timeout>=2.1.0",
            "hypothesis>=6.80.0",
            "black>=23.0.0",
            "flake8>=6.0.0",
            "mypy>=1.4.0",
            "isort>=5.12.0",
        ],
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
            "pytest-mock>=3.11.0",
            "pytest-timeout>=2.1.0",
            "hypothesis>=6.80.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "envcrypt=envcrypt.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Security :: Cryptography",
        "Topic :: Software Development :: Testing",
    ],
    keywords="dotenv encryption credentials aes-gcm argon2 testing",
)
