"""
Certificate-issuance orchestrator: CLI entry point.

Usage:
  python main.py --certificate-name example --dns-names example.com www.example.com
  python main.py --certificate-name example --dns-names example.com --instance-id renew-42
  python main.py --resume renew-42            # Replay/continue a stored instance
  python main.py --show-history renew-42      # Dump the recorded events
  python main.py --list                       # Stored instances and their status

Collaborators are loaded from a "package.module:callable" factory given by
--activities or ACTIVITIES_FACTORY; the callable receives the Settings object
and returns an IssuanceActivities implementation.
"""
from __future__ import annotations

import argparse
import importlib
import json
import logging
import sys

import structlog

# ── Logging setup ─────────────────────────────────────────────────────────────

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger(__name__)


# ── Helpers ───────────────────────────────────────────────────────────────────


def load_activities(factory_path: str, settings):
    """Import ``package.module:callable`` and call it with the settings."""
    if not factory_path or ":" not in factory_path:
        raise ValueError(
            "No collaborator factory configured. Set ACTIVITIES_FACTORY or pass --activities."
        )
    module_name, attr = factory_path.split(":", 1)
    module = importlib.import_module(module_name)
    factory = getattr(module, attr)
    return factory(settings)


def _report(outcome: dict) -> int:
    if outcome["succeeded"]:
        certificate = outcome["certificate"] or {}
        log.info(
            "Instance %s succeeded — certificate %s expires %s",
            outcome["instance_id"],
            certificate.get("name", "?"),
            certificate.get("expires_on", "?"),
        )
        return 0
    log.error(
        "Instance %s failed at %s: %s",
        outcome["instance_id"],
        outcome["failed_step"],
        outcome["reason"],
    )
    return 1


# ── Commands ──────────────────────────────────────────────────────────────────


def run_once(
    certificate_name: str,
    dns_names: list[str],
    instance_id: str | None = None,
    activities_factory: str | None = None,
    use_checkpoint: bool = False,
) -> int:
    """Start one issuance instance and return the process exit code."""
    from activities.journal import NonDeterminismError
    from agent.graph import run_issuance
    from agent.state import make_request
    from config import settings
    from storage.history import FileHistoryStore

    try:
        request = make_request(certificate_name, dns_names)
        activities = load_activities(activities_factory or settings.ACTIVITIES_FACTORY, settings)
    except (ValueError, ImportError, AttributeError) as exc:
        log.error("%s", exc)
        return 1

    log.info(
        "Issuing certificate %s for %d name(s): %s",
        certificate_name, len(dns_names), ", ".join(dns_names),
    )
    try:
        outcome = run_issuance(
            request,
            activities,
            store=FileHistoryStore(settings.HISTORY_STORE_PATH),
            instance_id=instance_id,
            settings=settings,
            use_checkpointing=use_checkpoint,
        )
    except (ValueError, NonDeterminismError) as exc:
        log.error("%s", exc)
        return 1
    return _report(outcome)


def run_resume(
    instance_id: str,
    activities_factory: str | None = None,
    use_checkpoint: bool = False,
) -> int:
    """Replay a stored instance and continue it from its first unrecorded step."""
    from activities.journal import NonDeterminismError
    from agent.graph import resume_issuance
    from config import settings
    from storage.history import FileHistoryStore

    try:
        activities = load_activities(activities_factory or settings.ACTIVITIES_FACTORY, settings)
        outcome = resume_issuance(
            instance_id,
            activities,
            store=FileHistoryStore(settings.HISTORY_STORE_PATH),
            settings=settings,
            use_checkpointing=use_checkpoint,
        )
    except (KeyError, ValueError, ImportError, AttributeError, NonDeterminismError) as exc:
        log.error("%s", exc)
        return 1
    return _report(outcome)


def show_history(instance_id: str) -> int:
    from config import settings
    from storage.history import FileHistoryStore

    try:
        record = FileHistoryStore(settings.HISTORY_STORE_PATH).load(instance_id)
    except ValueError as exc:
        log.error("%s", exc)
        return 1
    if record is None:
        log.error("No history for instance %r", instance_id)
        return 1
    print(json.dumps(record, indent=2, sort_keys=True))
    return 0


def list_history() -> int:
    """Print one line per stored instance: id, status, certificate name."""
    from config import settings
    from storage.history import FileHistoryStore

    store = FileHistoryStore(settings.HISTORY_STORE_PATH)
    instance_ids = store.list_instances()
    if not instance_ids:
        log.info("No instances recorded under %s", settings.HISTORY_STORE_PATH)
    for instance_id in instance_ids:
        record = store.load(instance_id)
        print(f"{instance_id}\t{record['status']}\t{record['input']['certificate_name']}")
    return 0


# ── CLI ───────────────────────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="ACME certificate-issuance orchestrator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --certificate-name example --dns-names example.com
  python main.py --certificate-name wild --dns-names "*.example.com" example.com
  python main.py --resume 3f2a9c
  python main.py --show-history 3f2a9c
  python main.py --list
        """,
    )
    parser.add_argument(
        "--certificate-name",
        metavar="NAME",
        help="Certificate identifier in the secret store",
    )
    parser.add_argument(
        "--dns-names",
        nargs="+",
        metavar="DOMAIN",
        help="DNS names to include in the certificate (first one is the subject)",
    )
    parser.add_argument(
        "--instance-id",
        metavar="ID",
        help="Name for the new instance (default: random)",
    )
    parser.add_argument(
        "--resume",
        metavar="ID",
        help="Replay and continue a stored instance",
    )
    parser.add_argument(
        "--show-history",
        metavar="ID",
        help="Print the recorded event history of an instance",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List stored instances with their status",
    )
    parser.add_argument(
        "--activities",
        metavar="MODULE:CALLABLE",
        help="Collaborator factory (overrides ACTIVITIES_FACTORY)",
    )
    parser.add_argument(
        "--checkpoint",
        action="store_true",
        help="Attach a LangGraph MemorySaver to the run",
    )

    args = parser.parse_args(argv)

    from config import settings
    logging.getLogger().setLevel(settings.LOG_LEVEL)

    if args.list:
        return list_history()
    if args.show_history:
        return show_history(args.show_history)
    if args.resume:
        return run_resume(args.resume, args.activities, use_checkpoint=args.checkpoint)
    if not args.certificate_name or not args.dns_names:
        parser.print_help()
        return 1
    return run_once(
        args.certificate_name,
        args.dns_names,
        instance_id=args.instance_id,
        activities_factory=args.activities,
        use_checkpoint=args.checkpoint,
    )


if __name__ == "__main__":
    sys.exit(main())
