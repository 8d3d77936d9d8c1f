"""Health and configuration commands."""
from __future__ import annotations

from casevia.cli.base import app, console, create_table
from casevia.core.settings import get_settings


def _configured(value: str | None) -> str:
    return "yes" if value else "no"


@app.command("health")  # type: ignore[misc]
def health() -> None:
    """Show basic health / config info."""
    settings = get_settings()
    table = create_table("casevia Health", ["Key", "Value"])
    table.add_row("environment", settings.environment)
    table.add_row("debug", str(settings.debug))
    table.add_row("api_prefix", settings.api_prefix)
    table.add_row("assemblyai configured", _configured(settings.assemblyai_api_key))
    table.add_row("webhooks enabled", _configured(settings.public_base_url and settings.webhook_secret))
    table.add_row("llm_model", settings.llm_model)
    table.add_row("email configured", _configured(settings.resend_api_key and settings.resend_from_email))
    table.add_row("poll", f"{settings.poll_max_attempts} x {settings.poll_interval_seconds}s")
    console.print(table)
