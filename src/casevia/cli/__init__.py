"""CLI commands for casevia."""
# Import all command modules to register them with the main app
from casevia.cli import health, projects  # noqa: F401
from casevia.cli.base import app

__all__ = ["app", "health", "main", "projects"]


def main() -> None:
    app()
