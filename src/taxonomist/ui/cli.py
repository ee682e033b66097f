# ruff: noqa: T201

from __future__ import annotations

import argparse
import logging
import sys
import threading
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from taxonomist.app import (
    build_runtime,
    check_master_data,
    commit_session,
    dump_json,
    import_file,
    repair_master_data,
    seed_store,
    set_node_status,
    sync_stores,
)
from taxonomist.config import configure_logging
from taxonomist.domain.model import EntityStatus, EntityType

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)

_STATUS_BY_ACTION = {
    "promote": EntityStatus.ACTIVE,
    "archive": EntityStatus.ARCHIVED,
}

# set by SIGINT while a sync is running; the synchronizer stops between entities
_CANCEL = threading.Event()
_SYNC_RUNNING = threading.Event()


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Maintain the marketing taxonomy master data")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: %(default)s)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    check = subparsers.add_parser("check", help="Run the master data consistency check")
    check.add_argument(
        "--master-data",
        type=Path,
        help="Master data JSON document to check (defaults to the operational store)",
    )

    repair = subparsers.add_parser("repair", help="Add missing reciprocal edges to a document")
    repair.add_argument("--master-data", type=Path, required=True, help="Master data JSON document")
    repair.add_argument(
        "--write",
        action="store_true",
        help="Write the repaired document back (otherwise only report the actions)",
    )

    seed = subparsers.add_parser("seed", help="Load a master data document into the store")
    seed.add_argument("--master-data", type=Path, required=True, help="Master data JSON document")

    upload = subparsers.add_parser("import", help="Upload and validate a JSON file of rows")
    upload.add_argument("file", type=Path, help="JSON array of string-keyed rows")
    upload.add_argument("--schema", type=str, required=True, help="Record schema name")
    upload.add_argument("--business-unit", type=str, required=True, help="Business unit")
    upload.add_argument(
        "--no-auto-create",
        action="store_true",
        help="Treat unknown ranges and campaigns as blocking instead of creating them",
    )
    upload.add_argument(
        "--commit",
        action="store_true",
        help="Commit right away when validation finds no blocking issue",
    )

    commit = subparsers.add_parser("commit", help="Commit a validated import session")
    commit.add_argument("session_id", type=str, help="Import session id")

    sessions = subparsers.add_parser("sessions", help="Import session housekeeping")
    sessions_sub = sessions.add_subparsers(dest="sessions_command", required=True)
    sessions_sub.add_parser("list", help="List stored sessions")
    sessions_show = sessions_sub.add_parser("show", help="Show one session")
    sessions_show.add_argument("session_id", type=str, help="Import session id")
    sessions_sub.add_parser("cleanup", help="Remove expired sessions")
    sessions_sub.add_parser("stats", help="Session counts by status")

    sync = subparsers.add_parser("sync", help="Synchronise the operational store with the mirror")
    sync.add_argument(
        "--dry-run",
        action="store_true",
        help="Only compare the stores and report the differences",
    )

    status = subparsers.add_parser("status", help="Promote or archive a range or campaign")
    status.add_argument("action", choices=sorted(_STATUS_BY_ACTION))
    status.add_argument("entity_type", choices=[EntityType.RANGE.value, EntityType.CAMPAIGN.value])
    status.add_argument("name", type=str)

    return parser.parse_args(list(argv))


def _run_sessions(args: argparse.Namespace) -> None:
    manager = build_runtime().sessions
    if args.sessions_command == "list":
        for session in manager.list_sessions():
            print(
                f"{session.session_id}  {session.status:<10}  {session.business_unit:<12}  "
                f"{session.schema_name:<24}  rows={session.total_records}  "
                f"canImport={session.can_import}"
            )
    elif args.sessions_command == "show":
        session = manager.get(args.session_id)
        print(
            dump_json(
                {
                    "sessionId": session.session_id,
                    "status": session.status.value,
                    "businessUnit": session.business_unit,
                    "schema": session.schema_name,
                    "canImport": session.can_import,
                    "summary": session.summary.to_dict() if session.summary else None,
                    "issues": [issue.to_dict() for issue in session.issues],
                    "commitReport": (
                        session.commit_report.to_dict() if session.commit_report else None
                    ),
                    "failureReason": session.failure_reason,
                    "expiresAt": session.expires_at,
                }
            )
        )
    elif args.sessions_command == "cleanup":
        result = manager.cleanup_expired()
        print(dump_json({"removed": result.removed, "errors": result.errors}))
    else:
        print(dump_json(manager.stats().to_dict()))


def _run_sync(args: argparse.Namespace) -> None:
    _CANCEL.clear()
    _SYNC_RUNNING.set()
    try:
        result = sync_stores(dry_run=args.dry_run, cancel=_CANCEL)
    finally:
        _SYNC_RUNNING.clear()
    print(dump_json(result.to_dict()))


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
        configure_logging(level=logging.getLevelNamesMapping()[parsed_args.log_level])
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)

    exit_status = 0
    try:
        if parsed_args.command == "check":
            report = check_master_data(master_data=parsed_args.master_data)
            print(dump_json([violation.to_dict() for violation in report.violations]))
            exit_status = report.exit_code
        elif parsed_args.command == "repair":
            result = repair_master_data(parsed_args.master_data, write=parsed_args.write)
            print(dump_json({"actions": list(result.actions), "written": parsed_args.write}))
        elif parsed_args.command == "seed":
            seeded = seed_store(parsed_args.master_data)
            log.info(
                "Seed finished: created=%s, links=%s, skipped=%s",
                {str(entity_type): count for entity_type, count in seeded.created.items()},
                seeded.links,
                len(seeded.skipped),
            )
        elif parsed_args.command == "import":
            session, commit_report = import_file(
                parsed_args.file,
                schema=parsed_args.schema,
                business_unit=parsed_args.business_unit,
                auto_create=False if parsed_args.no_auto_create else None,
                commit=parsed_args.commit,
            )
            print(
                dump_json(
                    {
                        "sessionId": session.session_id,
                        "status": session.status.value,
                        "canImport": session.can_import,
                        "summary": session.summary.to_dict() if session.summary else None,
                        "issues": [issue.to_dict() for issue in session.issues],
                        "commitReport": commit_report.to_dict() if commit_report else None,
                    }
                )
            )
        elif parsed_args.command == "commit":
            print(dump_json(commit_session(parsed_args.session_id).to_dict()))
        elif parsed_args.command == "sessions":
            _run_sessions(parsed_args)
        elif parsed_args.command == "sync":
            _run_sync(parsed_args)
        elif parsed_args.command == "status":
            entity = set_node_status(
                EntityType(parsed_args.entity_type),
                parsed_args.name,
                _STATUS_BY_ACTION[parsed_args.action],
            )
            log.info("%s %r is now %s", entity.entity_type, entity.name, entity.status)
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except Exception:
        log.exception("Fatal error in %s", parsed_args.command)
        sys.exit(1)
    if exit_status:
        sys.exit(exit_status)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C): cancel a running sync, otherwise exit."""
    if _SYNC_RUNNING.is_set() and not _CANCEL.is_set():
        log.warning("Cancelling sync after the current entity (Ctrl+C again to abort)")
        _CANCEL.set()
        return
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
