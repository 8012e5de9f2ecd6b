"""
Timetravel setup.py — install the analyser and its command-line runner.

Usage:
    pip install .                          # install everything
    pip install ".[dev]"                   # install with dev tools
"""

from pathlib import Path

from setuptools import find_packages, setup

HERE = Path(__file__).resolve().parent
long_description = ""
if (HERE / "README.md").exists():
    long_description = (HERE / "README.md").read_text(encoding="utf-8")

setup(
    name="timetravel",
    version="0.1.0",
    description="Staking election time-travel analyser: Phragmén, PhragMMS and DPoS over historical states",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="MIT",
    author="Timetravel Contributors",
    python_requires=">=3.10",
    packages=find_packages(exclude=["tests", "tests.*", "build"]),
    py_modules=["run_timetravel"],
    install_requires=[
        "aiohttp>=3.9.0,<4",
        "tomli>=2.0.0,<3;python_version<'3.11'",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
            "pytest-cov>=4.0",
            "mypy>=1.5",
            "ruff>=0.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "timetravel=run_timetravel:main_sync",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Topic :: Scientific/Engineering",
    ],
)
