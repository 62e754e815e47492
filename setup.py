"""
Setup script for adaptive-learning-engine.

The adaptive learning engine tracks what a learner knows and decides what
to show next:

1. Review Scheduling - SM-2 intervals and a bounded mastery score per item
2. Practice Selection - Blends due, weak and new items into one batch
3. Pattern Learning - Learns annotation positions and failure modes from
   reviewer feedback, and feeds them back into generation prompts

The 'adaptive-engine' command is the CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="adaptive-learning-engine",
    version="1.0.0",
    description="Spaced repetition, practice blending and annotation pattern learning",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(include=["adaptive_engine", "adaptive_engine.*"]),
    py_modules=["config"],
    python_requires=">=3.11",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "adaptive-engine=adaptive_engine.cli.main:run",
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
    keywords="learning spaced-repetition sm2 adaptive annotations",
)
