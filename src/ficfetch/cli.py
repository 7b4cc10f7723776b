from __future__ import annotations

import logging
import sys
from typing import List, Optional

import typer
from dotenv import load_dotenv

from .workflows.doctor import build_doctor_report, format_doctor_report
from .workflows.errors import FetchError, Forbidden, NotFound, Timeout, UpstreamHttpError, describe
from .workflows.fetcher import fetch_story_sync, search_sync
from .workflows.fetcher_config import SORT_COLUMNS, SORT_REVISED_AT
from .workflows.records import SearchQuery, SearchResultPage, StoryRecord

app = typer.Typer(add_help_option=False, no_args_is_help=False)

EXIT_OK = 0
EXIT_USAGE = 2
EXIT_UNEXPECTED = 3
EXIT_NOT_FOUND = 4
EXIT_FORBIDDEN = 5
EXIT_TIMEOUT = 6
EXIT_UPSTREAM = 7


def _minimal_help() -> str:
    return """ficfetch (archive metadata CLI)

Usage:
  ficfetch get <work id|url> [--json]
  ficfetch search [--query <TEXT>] [--fandom <TAG> ...] [--character <TAG> ...]
                  [--relationship <TAG> ...] [--complete|--incomplete]
                  [--words-from N] [--words-to N] [--kudos-from N]
                  [--sort <COLUMN>] [--page N] [--json]
  ficfetch doctor

Discoverability:
  --help-full     Expanded help + env vars + exit codes.
  --find <query>  Search commands, flags, env vars.
  --verbose       Log requests and strategy decisions to stderr.
"""


def _help_full() -> str:
    return """ficfetch CLI

Commands:
  get      Fetch one work's metadata by id or URL (chapter URLs accepted).
  search   Search the works listing; two or more --fandom values run a
           combined search that merges each fandom's results locally.
  doctor   Print dependency and configuration diagnostics.

Sort columns (--sort):
  revised_at (default), kudos_count, hits, bookmarks_count, comments_count

Important env vars (.env files are loaded automatically):
  FICFETCH_BASE_URL       Archive root (default https://archiveofourown.org).
  FICFETCH_MIN_INTERVAL   Seconds between requests (default 5, do not lower).
  FICFETCH_TIMEOUT        Per-request deadline in seconds (default 30).
  FICFETCH_BYPASS_DELAY   Pause between content-warning retries (default 1).
  FICFETCH_PAGE_DELAY     Pause between pages of one fandom (default 0.5).
  FICFETCH_PAGE_SIZE      Rows per combined-search page (default 20).
  FICFETCH_USER_AGENT     Override the browser user agent.

Exit codes:
  0 ok, 2 usage error, 3 unexpected failure, 4 not found, 5 forbidden,
  6 timeout, 7 upstream HTTP error.
"""


_FIND_INDEX = [
    ("command", "get", "Fetch one work's metadata by id or URL."),
    ("command", "search", "Search the works listing (combined when several fandoms)."),
    ("command", "doctor", "Print dependency and configuration diagnostics."),
    ("flag", "--json", "Print the record or result page as JSON."),
    ("flag", "--query", "Free-text search query."),
    ("flag", "--fandom", "Fandom tag; repeat for a combined search."),
    ("flag", "--character", "Character tag; repeatable."),
    ("flag", "--relationship", "Relationship tag; repeatable."),
    ("flag", "--complete", "Only complete works (--incomplete for the opposite)."),
    ("flag", "--words-from", "Minimum word count."),
    ("flag", "--words-to", "Maximum word count."),
    ("flag", "--kudos-from", "Minimum kudos."),
    ("flag", "--sort", "Sort column."),
    ("flag", "--page", "Result page (1-based)."),
    ("flag", "--verbose", "Log requests and strategy decisions."),
    ("flag", "--help-full", "Expanded help, env vars, exit codes."),
    ("flag", "--find", "Search commands, flags, env vars."),
    ("env", "FICFETCH_BASE_URL", "Archive root URL."),
    ("env", "FICFETCH_MIN_INTERVAL", "Seconds between requests."),
    ("env", "FICFETCH_TIMEOUT", "Per-request deadline."),
    ("env", "FICFETCH_BYPASS_DELAY", "Pause between content-warning retries."),
    ("env", "FICFETCH_PAGE_DELAY", "Pause between pages of one fandom."),
    ("env", "FICFETCH_PAGE_SIZE", "Rows per combined-search page."),
    ("env", "FICFETCH_USER_AGENT", "Browser user agent override."),
]


def _run_find(query: str) -> str:
    needle = (query or "").strip().lower()
    if not needle:
        return ""
    lines = []
    for category, name, desc in _FIND_INDEX:
        haystack = f"{category} {name} {desc}".lower()
        if needle in haystack:
            lines.append(f"{category} {name} - {desc}")
    return "\n".join(lines)


def _exit_code_for(exc: FetchError) -> int:
    if isinstance(exc, NotFound):
        return EXIT_NOT_FOUND
    if isinstance(exc, Forbidden):
        return EXIT_FORBIDDEN
    if isinstance(exc, Timeout):
        return EXIT_TIMEOUT
    if isinstance(exc, UpstreamHttpError):
        return EXIT_UPSTREAM
    return EXIT_UNEXPECTED


def _format_story(story: StoryRecord) -> str:
    total = story.chapters.total if story.chapters.total is not None else "?"
    lines = [
        f"{story.title} by {story.author or 'Anonymous'}",
        f"  url: {story.url}",
        f"  fandom: {', '.join(story.fandom) or '-'}",
        f"  words: {story.word_count}  chapters: {story.chapters.current}/{total}"
        f"  complete: {'yes' if story.is_complete else 'no'}",
        f"  kudos: {story.kudos}  bookmarks: {story.bookmarks}  hits: {story.hits}",
        f"  published: {story.published_date}  updated: {story.last_updated_date}",
    ]
    if story.summary:
        lines.append("")
        lines.extend(f"  {line}" for line in story.summary.splitlines())
    return "\n".join(lines)


def _format_page(page: SearchResultPage) -> str:
    lines = [f"Page {page.current_page} of ~{page.total_pages} ({page.strategy})"]
    for story in page.stories:
        lines.append(
            f"{story.work_id:>10}  {story.title} by {story.author or 'Anonymous'}"
            f"  [{story.last_updated_date}, {story.kudos} kudos]"
        )
    for error in page.errors:
        lines.append(f"warning: {error}")
    return "\n".join(lines)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    help: bool = typer.Option(False, "--help", "-h", is_eager=True, help="Show minimal help."),
    help_full: bool = typer.Option(False, "--help-full", is_eager=True, help="Show expanded help."),
    find: Optional[str] = typer.Option(None, "--find", is_eager=True, help="Search commands, flags, env vars."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log requests and strategy decisions."),
) -> None:
    load_dotenv()
    if help_full:
        typer.echo(_help_full())
        raise typer.Exit(code=EXIT_OK)
    if find is not None:
        output = _run_find(find)
        if output:
            typer.echo(output)
        raise typer.Exit(code=EXIT_OK)
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    if help or ctx.invoked_subcommand is None:
        typer.echo(_minimal_help())
        raise typer.Exit(code=EXIT_OK)


@app.command("doctor", add_help_option=True)
def doctor_cmd() -> None:
    """Print dependency and configuration diagnostics."""
    report = build_doctor_report()
    typer.echo(format_doctor_report(report))
    raise typer.Exit(code=EXIT_OK if report.get("ok", True) else EXIT_USAGE)


@app.command("get", add_help_option=True)
def get_story(
    work: str = typer.Argument(..., help="Work id or work/chapter URL."),
    json_out: bool = typer.Option(False, "--json", help="Print the record as JSON."),
) -> None:
    try:
        story = fetch_story_sync(work)
    except ValueError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=EXIT_USAGE)
    except FetchError as exc:
        typer.echo(f"error: {describe(exc)}", err=True)
        raise typer.Exit(code=_exit_code_for(exc))
    except Exception as exc:
        typer.echo(f"fatal: {exc}", err=True)
        raise typer.Exit(code=EXIT_UNEXPECTED)
    if json_out:
        sys.stdout.write(story.to_json() + "\n")
    else:
        typer.echo(_format_story(story))
    raise typer.Exit(code=EXIT_OK)


@app.command("search", add_help_option=True)
def search_works(
    query: str = typer.Option("", "--query", "-q", help="Free-text search query."),
    fandom: Optional[List[str]] = typer.Option(None, "--fandom", help="Fandom tag; repeat for a combined search."),
    character: Optional[List[str]] = typer.Option(None, "--character", help="Character tag; repeatable."),
    relationship: Optional[List[str]] = typer.Option(None, "--relationship", help="Relationship tag; repeatable."),
    complete: Optional[bool] = typer.Option(None, "--complete/--incomplete", help="Filter by completion."),
    words_from: Optional[int] = typer.Option(None, "--words-from", min=0, help="Minimum word count."),
    words_to: Optional[int] = typer.Option(None, "--words-to", min=0, help="Maximum word count."),
    kudos_from: Optional[int] = typer.Option(None, "--kudos-from", min=0, help="Minimum kudos."),
    sort: str = typer.Option(SORT_REVISED_AT, "--sort", help="Sort column."),
    page: int = typer.Option(1, "--page", min=1, help="Result page (1-based)."),
    json_out: bool = typer.Option(False, "--json", help="Print the result page as JSON."),
) -> None:
    if sort not in SORT_COLUMNS:
        typer.echo(f"error: unknown sort column {sort!r}; choose from {', '.join(SORT_COLUMNS)}", err=True)
        raise typer.Exit(code=EXIT_USAGE)
    search_query = SearchQuery(
        query=query,
        fandoms=tuple(fandom or ()),
        characters=tuple(character or ()),
        relationships=tuple(relationship or ()),
        complete=complete,
        words_from=words_from,
        words_to=words_to,
        kudos_from=kudos_from,
        sort_column=sort,
        page=page,
    )
    try:
        result = search_sync(search_query)
    except FetchError as exc:
        typer.echo(f"error: {describe(exc)}", err=True)
        raise typer.Exit(code=_exit_code_for(exc))
    except Exception as exc:
        typer.echo(f"fatal: {exc}", err=True)
        raise typer.Exit(code=EXIT_UNEXPECTED)
    if json_out:
        sys.stdout.write(result.to_json() + "\n")
    else:
        typer.echo(_format_page(result))
    raise typer.Exit(code=EXIT_OK)
