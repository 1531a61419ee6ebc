# /ragdesk/app.py
"""
Command-line interface for RagDesk.
Upload documents, index them and ask questions from a terminal session.
"""
import os
import sys
from pathlib import Path

from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table, box

from .chat_service import ChatSession
from .config import CHAT_MODEL_NAME, CHUNK_OVERLAP, CHUNK_SIZE, EMBEDDING_MODEL_NAME, console
from .exceptions import RagDeskError
from .models import ChatResponse, DocumentStatus
from .observability import get_logger
from .prompts import OPENAI_REMEDIATION
from .services import Services, build_services

logger = get_logger(__name__)

STATUS_STYLES = {
    DocumentStatus.PROCESSED: "green",
    DocumentStatus.PROCESSING: "yellow",
    DocumentStatus.ERROR: "red",
}


# --- UI & Formatting Functions ---

def display_welcome_banner(services: Services):
    console.print(Panel(
        "[bold magenta]RagDesk - Internal Document Q&A[/bold magenta]",
        subtitle="[cyan]Answers grounded in your own documents[/cyan]",
        expand=False
    ))
    console.print(f"[green]Chunking: {CHUNK_SIZE} chars, overlap {CHUNK_OVERLAP}[/green]")
    console.print(f"[green]Models: {EMBEDDING_MODEL_NAME} / {CHAT_MODEL_NAME}[/green]")
    console.print(f"[green]Search strategy: {services.index.strategy.name}[/green]")
    if not services.embedder.is_configured or not services.completer.is_configured:
        console.print(Panel(f"[yellow]{OPENAI_REMEDIATION}[/yellow]", title="Model services disabled"))


def format_sources(response: ChatResponse) -> str:
    if not response.sources:
        return "[dim]No sources.[/dim]"
    lines = []
    for position, citation in enumerate(response.sources, start=1):
        excerpt = citation.excerpt.replace("\n", " ")
        lines.append(f"[bold]{position}. {citation.title}[/bold]\n   [dim]{excerpt}...[/dim]")
    return "\n".join(lines)


def render_response(response: ChatResponse):
    console.print(Panel(Markdown(response.answer), title="Answer", border_style="blue"))
    if response.sources:
        console.print(Panel(format_sources(response), title="Sources", border_style="yellow"))


# --- Main Application Flow ---

def _resolve_upload_path(raw_input: str) -> tuple[Path | None, str | None]:
    """Normalizes and validates user-provided upload path."""
    cleaned = str(raw_input or "").strip().strip('"').strip("'")
    if not cleaned:
        return None, "Error: Empty path provided."
    try:
        resolved = Path(cleaned).expanduser().resolve(strict=True)
    except FileNotFoundError:
        return None, f"Error: File not found at '{cleaned}'"
    except OSError as exc:
        return None, f"Error: Invalid path '{cleaned}' ({exc})"

    if os.name == "nt":
        is_reserved_fn = getattr(os.path, "isreserved", None)
        if callable(is_reserved_fn) and is_reserved_fn(str(resolved)):
            return None, f"Error: Reserved path is not allowed: '{resolved}'"
    if not resolved.is_file():
        return None, f"Error: Path is not a regular file: '{resolved}'"
    return resolved, None


def handle_document_upload(services: Services):
    """Uploads one document and indexes it straight away."""
    file_path_str = Prompt.ask("Enter the full path to your document")
    file_path, error_message = _resolve_upload_path(file_path_str)
    if file_path is None:
        console.print(f"[bold red]{error_message}[/bold red]")
        return
    title = Prompt.ask("Enter a custom title (optional)", default=file_path.name)
    try:
        record = services.uploader.upload(file_path, title)
    except RagDeskError as exc:
        logger.error("cli_upload_failed", file_path=str(file_path), error=str(exc))
        console.print(f"[bold red]Upload failed: {exc.message}[/bold red]")
        return
    console.print(
        Panel(
            f"[green]OK Document uploaded: [bold]{record.id}[/bold]\n"
            f"       Title: {record.file_name}",
            title="Upload Success",
            border_style="green",
        )
    )

    with console.status("[bold cyan]Indexing document...[/bold cyan]", spinner="dots") as status:
        ok = services.ingestor.process_document(
            record.id,
            on_progress=lambda percent: status.update(f"[bold cyan]Indexing document... {percent}%[/bold cyan]"),
        )
    if ok:
        chunks = services.store.count_embedded_chunks(record.id)
        console.print(f"[green]OK Indexed {chunks} searchable chunk(s).[/green]")
    else:
        console.print("[yellow]The document could not be indexed. Check the log for details.[/yellow]")


def list_documents(services: Services):
    """Displays a table of all uploaded documents."""
    documents = services.store.list_documents()
    if not documents:
        console.print("[yellow]No documents uploaded yet.[/yellow]")
        return

    table = Table(title="Uploaded Documents", border_style="blue", header_style="bold", box=box.SQUARE)
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="magenta")
    table.add_column("Status", style="white")
    table.add_column("Chunks", style="yellow", justify="right")
    table.add_column("Uploaded", style="dim")

    for record in documents:
        style = STATUS_STYLES.get(record.status, "white")
        table.add_row(
            record.id,
            record.file_name,
            f"[{style}]{record.status.value}[/{style}]",
            str(services.store.count_embedded_chunks(record.id)),
            record.uploaded_at[:19],
        )
    console.print(table)


def handle_pending_processing(services: Services):
    with console.status("[bold cyan]Processing pending documents...[/bold cyan]", spinner="dots"):
        summary = services.ingestor.process_pending_documents()
    console.print(
        f"[green]Processed: {len(summary.processed)}[/green]  "
        f"[cyan]Skipped: {len(summary.skipped)}[/cyan]  "
        f"[red]Failed: {len(summary.failed)}[/red]"
    )


def handle_qa_session(services: Services):
    """Runs a chat loop; the conversation lives only as long as this loop."""
    session = ChatSession(services.chat)
    console.print("\n[bold green]Q&A Session Started.[/bold green] [italic]Type 'back' to return to menu.[/italic]")
    while True:
        query = Prompt.ask("[bold cyan]Ask a question (or type 'back' to go back to the menu)[/bold cyan]")
        if query.lower() == "back":
            break
        if not query.strip():
            continue
        with console.status("[bold cyan]Thinking...[/bold cyan]", spinner="dots"):
            response = session.ask(query)
        render_response(response)


def main():
    """Main application loop."""
    services = build_services()
    display_welcome_banner(services)

    try:
        while True:
            try:
                console.print("\n[bold]Main Menu:[/bold]")
                console.print("[green]1. Upload Document[/green]")
                console.print("[cyan]2. List Documents[/cyan]")
                console.print("[magenta]3. Process Pending Documents[/magenta]")
                console.print("[blue]4. Start Q&A Session[/blue]")
                console.print("[red]5. Exit[/red]")

                choice = Prompt.ask("Choose an option", choices=["1", "2", "3", "4", "5"])

                if choice == "1":
                    handle_document_upload(services)
                elif choice == "2":
                    list_documents(services)
                elif choice == "3":
                    handle_pending_processing(services)
                elif choice == "4":
                    handle_qa_session(services)
                elif choice == "5":
                    break
            except KeyboardInterrupt:
                break
    finally:
        services.close()

    console.print("\n[bold magenta]Goodbye![/bold magenta]")
    sys.exit(0)


if __name__ == "__main__":
    main()
