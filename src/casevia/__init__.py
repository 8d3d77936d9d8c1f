"""Casevia: interview recordings in, marketing case studies out."""
from casevia.main import create_app

__all__ = ["create_app"]
