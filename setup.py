#!/usr/bin/env python3
"""
Setup script for dupscan
"""

from setuptools import setup, find_packages
import sys

# Ensure Python 3.9+
if sys.version_info < (3, 9):
    sys.exit("Python 3.9 or higher is required")

# Read version from __init__.py
def get_version():
    with open("dupscan/__init__.py", "r", encoding="utf-8") as f:
        for line in f:
            if line.startswith("__version__"):
                return line.split('"')[1]
    raise RuntimeError("Version not found")

# Read long description from README
def get_long_description():
    with open("README.md", "r", encoding="utf-8") as f:
        return f.read()

core_requirements = [
    "xxhash>=3.0.0",
]

dev_requirements = [
    "pytest>=7.4.0",
    "pytest-cov>=4.1.0",
    "black>=23.7.0",
    "flake8>=6.0.0",
    "mypy>=1.5.0",
]

setup(
    name="dupscan",
    version=get_version(),
    author="dupscan Team",
    author_email="info@dupscan.dev",
    description="Parallel duplicate file finder with a content-addressed index",
    long_description=get_long_description(),
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: End Users/Desktop",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: System :: Filesystems",
        "Topic :: Utilities",
        "Environment :: Console",
    ],
    python_requires=">=3.9",
    install_requires=core_requirements,
    extras_require={
        "dev": dev_requirements,
    },
    entry_points={
        "console_scripts": [
            "dupscan=dupscan.cli.main:main",
            "dup-scan=dupscan.cli.main:main",
        ],
    },
    include_package_data=True,
    zip_safe=False,
    keywords="deduplication, duplicate-files, file-management, hashing, concurrency",
)
