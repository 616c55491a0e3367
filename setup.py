#!/usr/bin/env python3
"""
Setup script for the KDPI decision-curve analysis package
"""

from setuptools import setup

# Read requirements from requirements.txt
with open('requirements.txt') as f:
    requirements = [line.strip() for line in f if line.strip() and not line.startswith('#')]

# Read version from __init__.py
with open('__init__.py') as f:
    for line in f:
        if line.startswith('__version__'):
            version = line.split('=')[1].strip().strip('"\'')
            break

setup(
    name="kdpi_dca",
    version=version,
    description="Decision-curve analysis of KDPI thresholds for deceased-donor kidney acceptance",
    author="KDPI DCA Team",
    author_email="example@example.com",
    url="https://github.com/example/kdpi-dca",
    packages=["src", "steps", "pipelines"],
    py_modules=["run_pipeline"],
    package_data={"src": ["*.yml"]},
    install_requires=requirements,
    extras_require={
        "test": ["pytest"],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Healthcare Industry",
        "Intended Audience :: Science/Research",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering :: Medical Science Apps.",
    ],
    python_requires=">=3.9",
    entry_points={
        "console_scripts": [
            "kdpi-dca=run_pipeline:main",
        ],
    },
)
