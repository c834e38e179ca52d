"""
CLI commands - operator entry points for the dossier workflow.

Each command follows a consistent pattern:
1. Parse arguments
2. Load environment and build the session
3. Run one session operation
4. Print results
5. Return exit code

The commands are thin: every state transition lives in ChronicleSession,
so the CLI only parses arguments and formats output.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from medichronicle.config import get_config
from medichronicle.core.models import SourceFile
from medichronicle.observability import init_tracing, shutdown_tracing
from medichronicle.schemas.records import PatientProfile
from medichronicle.session import AppStep, ChronicleSession, SessionError, create_session

logger = logging.getLogger(__name__)

CREDENTIALS_HINT = "Check OPENAI_API_KEY (environment or .env) and try again."
COMMAND_NAMES = ["register", "ingest", "list", "remove", "report", "reset"]


def _load_env() -> None:
    """Load environment variables from .env file."""
    load_dotenv()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _open_session() -> ChronicleSession:
    session = create_session(get_config())
    session.initialize()
    return session


def _require_profile(session: ChronicleSession) -> bool:
    if session.step is AppStep.REGISTRATION:
        print("No patient registered. Run `medichronicle register` first.")
        return False
    return True


def _print_error(error: SessionError | None) -> None:
    if error is None:
        return
    print(f"\n{error.operation.upper()} FAILED: {error.message}")
    if error.requires_credentials:
        print(CREDENTIALS_HINT)


def _collect_files(paths: list[str]) -> list[SourceFile]:
    """Expand directories one level and read every file."""
    files = []
    for raw in paths:
        path = Path(raw).expanduser()
        if path.is_dir():
            files.extend(SourceFile.from_path(p) for p in sorted(path.iterdir()) if p.is_file())
        else:
            files.append(SourceFile.from_path(path))
    return files


# ---------------------------------------------------------------------------
# COMMANDS
# ---------------------------------------------------------------------------


def run_register_cli(argv: list[str]) -> int:
    """Register (or replace) the patient profile."""
    parser = argparse.ArgumentParser(prog="medichronicle register", description="Register the patient")
    parser.add_argument("--name", required=True, help="Patient full name")
    parser.add_argument("--dob", required=True, help="Date of birth (YYYY-MM-DD)")
    parser.add_argument("--gender", required=True, choices=["Male", "Female", "Other"])
    args = parser.parse_args(argv)

    session = _open_session()
    session.register_profile(PatientProfile(name=args.name, dob=args.dob, gender=args.gender))
    print(f"Registered {args.name}. {len(session.documents)} document(s) on file.")
    return 0


def run_ingest_cli(argv: list[str]) -> int:
    """Classify and store new files."""
    parser = argparse.ArgumentParser(prog="medichronicle ingest", description="Ingest medical records")
    parser.add_argument("paths", nargs="+", help="Files or directories to ingest")
    args = parser.parse_args(argv)

    try:
        files = _collect_files(args.paths)
    except OSError as e:
        print(f"Could not read input: {e}")
        return 1

    session = _open_session()
    if not _require_profile(session):
        return 1

    def on_progress(processed: int, total: int) -> None:
        print(f"  Analyzing {processed}/{total}")

    print(f"Ingesting {len(files)} file(s)...")
    added = asyncio.run(session.ingest(files, on_progress))
    if added is None:
        _print_error(session.last_error)
        return 1

    print(f"Added {len(added)} document(s). {len(session.documents)} on file.")
    return 0


def run_list_cli(argv: list[str]) -> int:
    """Print the chronological timeline."""
    parser = argparse.ArgumentParser(prog="medichronicle list", description="List documents")
    parser.parse_args(argv)

    session = _open_session()
    if not _require_profile(session):
        return 1

    timeline = session.timeline
    if not timeline.ordered:
        print("No documents on file.")
        return 0

    for doc in timeline.ordered:
        marker = "DUP" if doc.id in timeline.flagged_ids else "   "
        print(f"  [{marker}] {doc.id}  {doc.date or 'Undated':<10}  {doc.category.value:<12}  {doc.summary}")

    print(f"\nTotal: {len(timeline.ordered)}  Excluded duplicates: {timeline.excluded_count}")
    return 0


def run_remove_cli(argv: list[str]) -> int:
    """Remove one document by id."""
    parser = argparse.ArgumentParser(prog="medichronicle remove", description="Remove a document")
    parser.add_argument("document_id", help="Document id (see `medichronicle list`)")
    args = parser.parse_args(argv)

    session = _open_session()
    if not _require_profile(session):
        return 1

    if not session.remove_document(args.document_id):
        print(f"No document with id {args.document_id}")
        return 1
    print(f"Removed {args.document_id}")
    return 0


def run_report_cli(argv: list[str]) -> int:
    """Synthesize the report and export both formats."""
    parser = argparse.ArgumentParser(prog="medichronicle report", description="Generate and export the report")
    parser.add_argument("--out", default=".", help="Output directory (default: current directory)")
    args = parser.parse_args(argv)

    session = _open_session()
    if not _require_profile(session):
        return 1
    if not session.documents:
        print("No documents on file. Run `medichronicle ingest` first.")
        return 1

    print("=" * 60)
    print("CLINICAL CASE PORTFOLIO")
    print("=" * 60)

    report = asyncio.run(session.generate_report())
    if report is None:
        _print_error(session.last_error)
        return 1

    paths = session.export(args.out)
    if paths is None:
        _print_error(session.last_error)
        return 1

    for path in paths:
        print(f"  Wrote {path}")
    return 0


def run_reset_cli(argv: list[str]) -> int:
    """Delete every stored document. The profile is kept."""
    parser = argparse.ArgumentParser(prog="medichronicle reset", description="Clear all documents")
    parser.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    args = parser.parse_args(argv)

    if not args.yes:
        answer = input("Delete every stored document? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Aborted")
            return 1

    session = _open_session()
    session.reset()
    print("All documents cleared.")
    return 0


def main(argv: list[str] | None = None) -> int:
    """
    Main CLI entry point with subcommands.

    Usage:
        medichronicle register --name "Jane Doe" --dob 1970-01-01 --gender Female
        medichronicle ingest scans/          # Classify and store files
        medichronicle list                   # Chronological timeline
        medichronicle remove <id>            # Drop one document
        medichronicle report --out exports/  # Synthesize + export PDF and DOC
        medichronicle reset --yes            # Clear every document
    """
    _load_env()

    parser = argparse.ArgumentParser(
        description="Medical record chronology and case portfolio builder",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  register    Register the patient profile
  ingest      Classify and store medical records
  list        Show the chronological timeline
  remove      Remove a document by id
  report      Generate the narrative report and export PDF + DOC
  reset       Clear every stored document
        """,
    )
    parser.add_argument("command", choices=COMMAND_NAMES, help="Command to run")

    # Parse just the command first
    args, remaining = parser.parse_known_args(argv)

    commands = {
        "register": run_register_cli,
        "ingest": run_ingest_cli,
        "list": run_list_cli,
        "remove": run_remove_cli,
        "report": run_report_cli,
        "reset": run_reset_cli,
    }

    config = get_config()
    _configure_logging(config.log_level)
    init_tracing()

    try:
        return commands[args.command](remaining)
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130
    except Exception as e:
        logger.exception(f"{args.command} failed")
        print(f"\nError: {e}")
        return 1
    finally:
        shutdown_tracing()


if __name__ == "__main__":
    sys.exit(main())
