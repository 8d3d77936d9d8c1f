"""Database and project inspection commands."""
from __future__ import annotations

import asyncio

import typer

from casevia.cli.base import app, console, create_table, print_error, print_success
from casevia.db.base import dispose_engine, get_session_factory, init_models
from casevia.db.models import Project
from casevia.db.repositories import CaseStudyRepository, ProjectRepository


@app.command("init-db")  # type: ignore[misc]
def init_db(
    drop: bool = typer.Option(False, "--drop", help="Drop all tables before creating them"),
) -> None:
    """Create the database tables."""

    async def _run() -> None:
        try:
            await init_models(drop=drop)
        finally:
            await dispose_engine()

    asyncio.run(_run())
    print_success("Database tables created" + (" (after drop)" if drop else ""))


async def _load_project(project_id: str) -> tuple[Project | None, list[str]]:
    try:
        async with get_session_factory()() as session:
            project = await ProjectRepository(session).get(project_id)
            case_studies = await CaseStudyRepository(session).list_by_project(project_id)
            return project, [cs.id for cs in case_studies]
    finally:
        await dispose_engine()


@app.command("project")  # type: ignore[misc]
def show_project(project_id: str = typer.Argument(..., help="Project id")) -> None:
    """Show a project's pipeline status."""
    project, case_study_ids = asyncio.run(_load_project(project_id))
    if project is None:
        print_error(f"Project {project_id} not found")
        raise typer.Exit(code=1)

    table = create_table(f"Project {project.id}", ["Field", "Value"])
    table.add_row("title", project.title)
    table.add_row("organization", project.organization_id)
    table.add_row("status", project.status)
    table.add_row("assembly_ai_id", project.assembly_ai_id or "-")
    table.add_row("transcript", f"{len(project.transcript)} chars" if project.transcript else "-")
    table.add_row("error", project.error_message or "-")
    table.add_row("case studies", ", ".join(case_study_ids) or "-")
    table.add_row("updated", project.updated_at.isoformat() if project.updated_at else "-")
    console.print(table)
