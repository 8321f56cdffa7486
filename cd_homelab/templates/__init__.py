"""Manifest templates shipped with the homelab CLI."""

from pathlib import Path


def get_template_path(template_name: str) -> Path:
    """Get the path to a template file.

    Args:
        template_name: Name of the template file (can include subdirectories)

    Returns:
        Path: Path to the template file

    Raises:
        FileNotFoundError: If template file cannot be found
    """
    template_path = Path(__file__).parent / template_name

    if not template_path.exists():
        raise FileNotFoundError(f"Template '{template_name}' not found at {template_path}")

    return template_path


def render_template(template_name: str, **values: str) -> str:
    """Fill a template's {placeholders} with the given values."""
    return get_template_path(template_name).read_text().format(**values)
