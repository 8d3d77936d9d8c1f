"""Case study generation: transcript formatting, model prompt and output contract."""
from __future__ import annotations

import json
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from casevia.core.errors import MalformedOutputError

SLUG_MAX_LENGTH = 60
_SLUG_INVALID = re.compile(r"[^a-z0-9]+")

CASE_STUDY_SYSTEM_PROMPT = """You are a senior B2B case study writer.

You receive the transcript of a customer interview. The interviewer (the agency or vendor) is
usually SPEAKER A and the customer, who is the subject of the case study, is usually SPEAKER B.

Return one JSON object with exactly these keys:

- "title": benefit-driven headline, e.g. "How TechCorp Reduced Support Tickets by 60% with AI
  Automation". Under 80 characters.
- "summary": one sentence, "[Client] achieved [outcome] by [key action]".
- "client_name": the customer's company name, or null if never mentioned.
- "client_industry": the customer's industry, as specific as the transcript allows.
- "customer_challenge": 2-3 paragraphs on the business problem, its root causes and the stakes,
  supported by direct customer quotes.
- "the_solution": 2-3 paragraphs on the approach, the rollout and the turning point, supported by
  direct customer quotes.
- "key_results_text": 1-2 paragraphs on the overall impact, strongest result first.
- "key_results": list of {"metric": "one measurable result", "quote": "verbatim customer quote
  backing it"}. Only numbers stated in the transcript; otherwise qualitative outcomes.
- "powerful_quotes": 5-7 verbatim customer quotes that show emotion, value or the before/after.
- "key_takeaways": 3-5 actionable insights on why this worked.
- "seo_title": 50-60 characters, "[Result] Case Study: [Industry or Client]".
- "seo_description": 140-155 characters.
- "linkedin_post_draft": 3-4 paragraph LinkedIn post from the agency's perspective: hook,
  context, results, call to action. At most three emojis.
- "x_thread_draft": list of 5 tweets (hook, problem, solution, results, call to action), each
  under 280 characters.

Rules: never invent metrics, quotes or facts that are not in the transcript; quote only the
customer, word for word apart from filler words; use null when information is missing; keep a
professional B2B tone.

Return only valid JSON, with no markdown fences or commentary."""

USER_PROMPT_TEMPLATE = (
    "Analyze this customer interview transcript and generate a comprehensive case study:\n\n"
    "{transcript}"
)


def format_transcript(transcript: str, speaker_labels: Any) -> str:
    """Render utterances as ``[SPEAKER]: text`` blocks; raw transcript when there are none."""
    if not speaker_labels or not isinstance(speaker_labels, list):
        return transcript
    blocks = []
    for utterance in speaker_labels:
        if not isinstance(utterance, dict):
            continue
        speaker = utterance.get("speaker") or "UNKNOWN"
        text = utterance.get("text") or ""
        blocks.append(f"[{speaker}]: {text}")
    return "\n\n".join(blocks) if blocks else transcript


def build_messages(formatted_transcript: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": CASE_STUDY_SYSTEM_PROMPT},
        {"role": "user", "content": USER_PROMPT_TEMPLATE.format(transcript=formatted_transcript)},
    ]


class ResultMetric(BaseModel):
    model_config = ConfigDict(extra="ignore")

    metric: str
    quote: str | None = None


class CaseStudyDraft(BaseModel):
    """The model's JSON answer. Only ``title`` is mandatory."""

    model_config = ConfigDict(extra="ignore")

    title: str
    summary: str | None = None
    client_name: str | None = None
    client_industry: str | None = None
    customer_challenge: str | None = None
    the_solution: str | None = None
    key_results_text: str | None = None
    key_results: list[ResultMetric] = []
    powerful_quotes: list[str] = []
    key_takeaways: list[str] = []
    seo_title: str | None = None
    seo_description: str | None = None
    linkedin_post_draft: str | None = None
    x_thread_draft: list[str] | None = None

    @field_validator("key_results", "powerful_quotes", "key_takeaways", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("x_thread_draft", mode="before")
    @classmethod
    def _thread_must_be_list(cls, value: Any) -> Any:
        # A thread that came back as a single string is dropped, not coerced.
        return value if isinstance(value, list) else None

    def case_study_values(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "summary": self.summary,
            "client_name": self.client_name or None,
            "client_industry": self.client_industry or None,
            "challenge": self.customer_challenge,
            "solution": self.the_solution,
            "results": self.key_results_text,
            "metrics": [m.model_dump() for m in self.key_results],
            "key_quotes": list(self.powerful_quotes),
            "key_takeaways": list(self.key_takeaways),
            "seo_title": self.seo_title or self.title,
            "seo_description": self.seo_description or self.summary,
            "public_slug": generate_slug(self.title) or None,
            "published": False,
        }

    def social_posts(self) -> list[tuple[str, str]]:
        posts: list[tuple[str, str]] = []
        if self.linkedin_post_draft:
            posts.append(("linkedin", self.linkedin_post_draft))
        if self.x_thread_draft:
            posts.append(("x", json.dumps(self.x_thread_draft)))
        return posts


def parse_case_study(raw: str | None) -> CaseStudyDraft:
    """Parse the model output; raises :class:`MalformedOutputError` on any contract violation."""
    try:
        data = json.loads(raw or "{}")
    except json.JSONDecodeError as e:
        raise MalformedOutputError("Model returned non-JSON output", provider="llm") from e
    if not isinstance(data, dict):
        raise MalformedOutputError("Model returned JSON that is not an object", provider="llm")
    try:
        return CaseStudyDraft.model_validate(data)
    except ValidationError as e:
        raise MalformedOutputError(
            "Model output does not match the case study contract",
            provider="llm",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e


def generate_slug(title: str) -> str:
    """``"How Acme Corp Increased Leads by 300%!"`` -> ``"how-acme-corp-increased-leads-by-300"``."""
    slug = _SLUG_INVALID.sub("-", title.lower()).strip("-")
    return slug[:SLUG_MAX_LENGTH]
