"""
Setup script for warroom-engine.

War Room is a staged entrepreneurship assessment: a learner runs a
simulated startup through six stages, answers are scored against
sixteen competencies, and known founder mistakes compound into later
stages.

The 'warroom' command is the entry point.
"""

from setuptools import find_packages, setup

setup(
    name="warroom-engine",
    version="0.1.0",
    description="Staged entrepreneurship assessment engine with compounding consequences",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(include=["warroom", "warroom.*"]),
    py_modules=["config"],
    package_data={"warroom.data": ["*.json", "stages/*.json"]},
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        # Config & Validation
        "pydantic>=2.5.0",
        "pydantic-settings>=2.0.0",
        # AI grading
        "google-generativeai>=0.3.0",
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
            "warroom=warroom.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
    ],
    keywords="entrepreneurship assessment simulation competencies cli education",
)
