# fleet_engine/pipeline/readme.py
from datetime import datetime


def generate_readme_file(name: str, generated_at: datetime) -> str:
    """Human-readable companion written next to the deployment descriptor."""
    return (
        f"Resource name: {name}\n"
        f"Generated at: {generated_at.isoformat()}\n"
        "\n"
        "This directory is managed by the fleet engine.\n"
        "Manual changes are overwritten on the next deployment.\n"
    )
