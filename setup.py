#!/usr/bin/env python3
"""Setup script for stale-container."""

from setuptools import setup, find_packages
from pathlib import Path

# Read version from package
version = {}
with open("stale_container/__init__.py") as f:
    exec(f.read(), version)

# Read long description from README
readme = Path("README.md").read_text(encoding="utf-8")

# Read requirements
requirements = Path("stale_container/requirements.txt").read_text().strip().split("\n")

setup(
    name="stale-container",
    version=version["__version__"],
    description="Find out whether a container image can be upgraded to a newer tag within a version constraint",
    long_description=readme,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"stale_container": ["requirements.txt"]},
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "stale-container=stale_container.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Environment :: Web Environment",
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: System :: Systems Administration",
        "Topic :: Software Development :: Build Tools",
    ],
    keywords="docker container registry semver upgrade stale",
)
