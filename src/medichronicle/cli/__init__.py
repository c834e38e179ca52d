"""
CLI module - command-line interface to the dossier workflow.

Provides entry points for:
- Registering the patient
- Ingesting, listing and removing documents
- Generating and exporting the report
"""

from medichronicle.cli.commands import (
    main,
    run_register_cli,
    run_ingest_cli,
    run_list_cli,
    run_remove_cli,
    run_report_cli,
    run_reset_cli,
)

__all__ = [
    "main",
    "run_register_cli",
    "run_ingest_cli",
    "run_list_cli",
    "run_remove_cli",
    "run_report_cli",
    "run_reset_cli",
]
