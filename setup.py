#!/usr/bin/python
# -*- encoding: utf-8 -*-
import ast
import re

from setuptools import find_packages
from setuptools import setup

## The version number is kept in one place only, as package.__version__
_version_re = re.compile(r"__version__\s+=\s+(.*)")
with open("calcodec/__init__.py", "rb") as f:
    version = str(
        ast.literal_eval(_version_re.search(f.read().decode("utf-8")).group(1))
    )

if __name__ == "__main__":
    test_packages = [
        "pytest",
        "pytest-coverage",
        "coverage",
        "pyyaml",
    ]

    setup(
        name="calcodec",
        version=version,
        description="iCalendar (RFC5545) codec with recurrence expansion and VTIMEZONE generation",
        long_description=open("README.md").read(),
        long_description_content_type="text/markdown",
        classifiers=[
            "Development Status :: 4 - Beta",
            "Intended Audience :: Developers",
            "License :: OSI Approved :: Apache Software License",
            "Operating System :: OS Independent",
            "Programming Language :: Python",
            "Topic :: Office/Business :: Scheduling",
            "Topic :: Software Development :: Libraries " ":: Python Modules",
        ],
        keywords="icalendar ics rrule vtimezone",
        license="Apache",
        packages=find_packages(exclude=["tests"]),
        include_package_data=True,
        zip_safe=False,
        python_requires=">=3.10",
        install_requires=[
            "icalendar>=7.0",
            "pytz",
            "python-dateutil",
            "tzdata",
        ],
        extras_require={
            "yaml": ["pyyaml"],
            "test": test_packages,
        },
    )
