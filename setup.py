"""
Setup script for waypoint-lms.

Waypoint is the progression-control and adaptive-roadmap engine of a
learning platform. It serves three roles:

1. Access control - Prerequisite, score and attempt-limit gating
2. Progress tracking - Monotonic progress records with unlock cascades
3. Adaptive roadmaps - Validated learning paths adjusted after failures

The 'waypoint' command is the CLI entry point; the REST API runs
with 'waypoint serve'.
"""

from setuptools import find_packages, setup

setup(
    name="waypoint-lms",
    version="0.3.0",
    description="Prerequisite-gated progression and adaptive learning roadmaps",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="Waypoint",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        "psycopg2-binary>=2.9.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
        # API
        "fastapi>=0.100.0",
        "uvicorn>=0.23.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "waypoint=waypoint.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning progression prerequisites roadmap education",
)
