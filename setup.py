#!/usr/bin/env python3
"""
Build configuration for httpweave.

Pure Python package in a src/ layout:
1. h11 frames requests and parses responses
2. urllib3 encodes multipart/form-data bodies
"""

from setuptools import find_packages, setup

setup(
    name="httpweave",
    version="0.1.0",
    description="Blocking HTTP/1.1 client over an event-driven exchange engine",
    license="MIT",
    python_requires=">=3.8",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "h11>=0.14",
        "urllib3>=1.26",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "cryptography>=41.0",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Topic :: Internet :: WWW/HTTP",
    ],
)
