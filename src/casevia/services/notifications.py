"""Best-effort "case study ready" email via the Resend HTTP API."""
from __future__ import annotations

import logging
from html import escape

import httpx

from casevia.core.settings import Settings, get_settings

logger = logging.getLogger(__name__)

FROM_NAME = "Casevia"


def case_study_url(app_url: str, project_id: str) -> str:
    return f"{app_url.rstrip('/')}/dashboard/projects/{project_id}/case-study"


class ResendNotifier:
    """Sends notification emails. Never raises: failures are logged and reported as False."""

    def __init__(
        self,
        api_key: str,
        from_email: str,
        *,
        app_url: str = "http://localhost:3000",
        base_url: str = "https://api.resend.com",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.from_email = from_email
        self.app_url = app_url
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> ResendNotifier:
        settings = settings or get_settings()
        return cls(
            settings.resend_api_key,
            settings.resend_from_email,
            app_url=settings.app_url,
            base_url=settings.resend_base_url,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.from_email)

    def _compose(self, project_id: str, title: str) -> dict[str, str]:
        link = case_study_url(self.app_url, project_id)
        text = (
            "Great news! Your case study is ready.\n\n"
            f"{title}\n\n"
            "It includes the challenge, solution and results, key metrics with customer quotes, "
            "and LinkedIn and X drafts ready to share.\n\n"
            f"View it here: {link}\n"
        )
        html = (
            "<p>Great news! Your case study is ready.</p>"
            f"<h2>{escape(title)}</h2>"
            "<p>It includes the challenge, solution and results, key metrics with customer "
            "quotes, and LinkedIn and X drafts ready to share.</p>"
            f'<p><a href="{escape(link)}">View your case study</a></p>'
        )
        return {"subject": f'Your case study "{title}" is ready!', "text": text, "html": html}

    async def send_case_study_ready(
        self, *, to: str, project_id: str, case_study_title: str
    ) -> bool:
        if not self.configured:
            logger.info(f"Email not configured; skipping ready notice for project {project_id}")
            return False

        message = self._compose(project_id, case_study_title)
        payload = {"from": f"{FROM_NAME} <{self.from_email}>", "to": [to], **message}
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(f"{self.base_url}/emails", json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"Failed to send ready email for project {project_id}: {e}")
            return False

        if response.is_error:
            logger.warning(
                f"Resend rejected ready email for project {project_id}: "
                f"{response.status_code} {response.text[:200]}"
            )
            return False
        logger.info(f"Sent ready email for project {project_id}")
        return True
