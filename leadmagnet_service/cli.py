"""Command-line interface for the lead-magnet service.

Usage:
    leadmagnet init-db
    leadmagnet upload guide.pdf --title "The Ultimate Guide" --description "..."
    leadmagnet documents
    leadmagnet senders add "HTD Solutions" info@htd.solutions
    leadmagnet templates add welcome --subject "Your free resource: {{document_title}}" --body-file body.html
    leadmagnet assign <document-id> --sender <sender-id> --template <template-id>
    leadmagnet leads --unique
    leadmagnet serve

Settings are read like the server does (``config.ini`` or ``LMS_*``
environment variables); ``--config`` selects another INI file.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.table import Table

from .config_loader import load_settings
from .core import LeadMagnetCore
from .errors import DocumentError
from .persistence import BODY_FORMATS, Persistence

console = Console()
err_console = Console(stderr=True)


def run_async(coro):
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[red]Error:[/red] {message}")


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def print_json(data: Any) -> None:
    console.print_json(json.dumps(data, indent=2, default=str))


async def _persistence(settings: Dict[str, Any]) -> Persistence:
    persistence = Persistence(settings["db_path"])
    await persistence.init_db()
    return persistence


@click.group()
@click.option("--config", "config_path", default=None, help="Path to the INI settings file.")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str]) -> None:
    """Manage lead-magnet documents, senders, templates and leads."""
    ctx.ensure_object(dict)
    ctx.obj["settings"] = load_settings(config_path)


@main.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create the database schema."""
    settings = ctx.obj["settings"]
    run_async(_persistence(settings))
    print_success(f"Database ready at {settings['db_path']}")


@main.command()
@click.argument("file_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--title", required=True, help="Document title shown on the landing page.")
@click.option("--description", default=None, help="Optional description.")
@click.option("--content-type", default=None, help="MIME type (guessed from the name when omitted).")
@click.pass_context
def upload(
    ctx: click.Context, file_path: Path, title: str, description: Optional[str], content_type: Optional[str]
) -> None:
    """Upload FILE_PATH to object storage and register its landing page."""
    settings = ctx.obj["settings"]

    async def _upload() -> Dict[str, Any]:
        svc = LeadMagnetCore.from_settings(settings)
        await svc.init()
        return await svc.documents.upload_document(
            title, file_path.name, file_path.read_bytes(), content_type=content_type, description=description
        )

    try:
        doc = run_async(_upload())
    except (DocumentError, ValueError) as exc:
        print_error(str(exc))
        raise SystemExit(1)
    print_success(f"Document '{doc['title']}' available at /d/{doc['slug']}")


@main.command()
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON.")
@click.pass_context
def documents(ctx: click.Context, as_json: bool) -> None:
    """List documents."""

    async def _list():
        persistence = await _persistence(ctx.obj["settings"])
        return await persistence.list_documents()

    docs = run_async(_list())
    if as_json:
        print_json(docs)
        return
    table = Table(title="Documents")
    table.add_column("ID", style="dim")
    table.add_column("Slug")
    table.add_column("Title")
    table.add_column("Active")
    table.add_column("Sender")
    table.add_column("Template")
    for doc in docs:
        table.add_row(
            doc["id"],
            doc["slug"],
            doc["title"],
            "[green]yes[/green]" if doc["is_active"] else "[red]no[/red]",
            doc["sender_id"] or "-",
            doc["email_template_id"] or "-",
        )
    console.print(table)


@main.command()
@click.argument("document_id")
@click.option("--sender", "sender_id", default=None, help="Sender id (omit for the default identity).")
@click.option("--template", "template_id", default=None, help="Template id (omit for the built-in template).")
@click.pass_context
def assign(ctx: click.Context, document_id: str, sender_id: Optional[str], template_id: Optional[str]) -> None:
    """Assign a sender and a template to a document."""

    async def _assign() -> bool:
        persistence = await _persistence(ctx.obj["settings"])
        return await persistence.assign_document_email(document_id, sender_id, template_id)

    if not run_async(_assign()):
        print_error(f"Document '{document_id}' not found")
        raise SystemExit(1)
    print_success("Document updated")


@main.group()
def senders() -> None:
    """Manage sender identities."""


@senders.command("add")
@click.argument("name")
@click.argument("email")
@click.pass_context
def senders_add(ctx: click.Context, name: str, email: str) -> None:
    async def _add():
        persistence = await _persistence(ctx.obj["settings"])
        return await persistence.add_sender(name, email)

    sender = run_async(_add())
    print_success(f"Sender {sender['name']} <{sender['email']}> added (id {sender['id']})")


@senders.command("list")
@click.pass_context
def senders_list(ctx: click.Context) -> None:
    async def _list():
        persistence = await _persistence(ctx.obj["settings"])
        return await persistence.list_senders()

    table = Table(title="Senders")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Email")
    for sender in run_async(_list()):
        table.add_row(sender["id"], sender["name"], sender["email"])
    console.print(table)


@main.group()
def templates() -> None:
    """Manage email templates."""


@templates.command("add")
@click.argument("name")
@click.option("--subject", required=True, help="Subject line, placeholders allowed.")
@click.option("--body-file", required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--format", "body_format", type=click.Choice(BODY_FORMATS), default="html", show_default=True)
@click.pass_context
def templates_add(ctx: click.Context, name: str, subject: str, body_file: Path, body_format: str) -> None:
    async def _add():
        persistence = await _persistence(ctx.obj["settings"])
        return await persistence.add_template(name, subject, body_file.read_text(encoding="utf-8"), body_format)

    template = run_async(_add())
    print_success(f"Template '{template['name']}' added (id {template['id']})")


@templates.command("list")
@click.pass_context
def templates_list(ctx: click.Context) -> None:
    async def _list():
        persistence = await _persistence(ctx.obj["settings"])
        return await persistence.list_templates()

    table = Table(title="Email templates")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Format")
    table.add_column("Subject")
    for template in run_async(_list()):
        table.add_row(template["id"], template["name"], template["body_format"], template["subject"])
    console.print(table)


@main.command()
@click.option("--unique", is_flag=True, help="One row per email address.")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON.")
@click.pass_context
def leads(ctx: click.Context, unique: bool, as_json: bool) -> None:
    """List captured leads."""

    async def _list():
        persistence = await _persistence(ctx.obj["settings"])
        return await persistence.list_leads(unique=unique)

    rows = run_async(_list())
    if as_json:
        print_json(rows)
        return
    table = Table(title=f"Leads ({len(rows)})")
    table.add_column("Email")
    table.add_column("Source")
    table.add_column("Captured at")
    for lead in rows:
        table.add_row(lead["email"], lead["source"] or "-", lead["captured_at"])
    console.print(table)


@main.command()
@click.pass_context
def serve(ctx: click.Context) -> None:
    """Run the HTTP server."""
    from .server import run_server

    run_server(ctx.obj["settings"])


if __name__ == "__main__":
    main()
