"""Reference data: stages, mistakes and competencies as JSON."""

from pathlib import Path

DATA_DIR = Path(__file__).resolve().parent
