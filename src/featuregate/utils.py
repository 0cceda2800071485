"""Utility functions for featuregate."""

from pathlib import Path


def get_templates_dir() -> Path:
    """Directory holding the bundled configuration templates.

    Raises:
        RuntimeError: Templates are missing from the installation
    """
    templates_dir = Path(__file__).parent / "templates"
    if not templates_dir.is_dir():
        raise RuntimeError(f"Templates directory not found: {templates_dir}")
    return templates_dir
