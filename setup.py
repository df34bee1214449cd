#!/usr/bin/env python3

from setuptools import setup, find_packages
from aptly_ops import VERSION
from os import path

this_directory = path.abspath(path.dirname(__file__))
with open(path.join(this_directory, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name="aptly-ops",
    version=VERSION,
    packages=find_packages(exclude=["tests"]),
    license="MIT",
    description="Search aptly snapshots and keep aptly mirrors published and rotated",
    long_description=long_description,
    long_description_content_type="text/markdown",
    install_requires=["urllib3", "python-dateutil"],
    extras_require={"test": ["pytest"]},
    python_requires=">=3.7",
    entry_points={
        "console_scripts":
            [
                "aptly-search = aptly_ops.cmd:search_main",
                "aptly-sync = aptly_ops.cmd:sync_main",
            ]
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Programming Language :: Python :: 3 :: Only",
        "Environment :: Console",
        "License :: OSI Approved :: MIT License",
    ]
)
