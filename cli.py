#!/usr/bin/env python3
"""Unified CLI for AppTrack.

Usage:
    python cli.py serve --port 8000
    python cli.py init-db
    python cli.py import-csv linkedin.csv --user me@example.com --dry-run
    python cli.py export --user me@example.com --format pdf --output report.pdf
    python cli.py backup --user me@example.com --description "Before cleanup"
    python cli.py send-notifications
"""
import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from apptrack.db.database import get_app_engine, get_session, init_db
from apptrack.db.models import User, utcnow
from apptrack.errors import APIError

logger = logging.getLogger("apptrack.cli")


def _find_user(session, email: str) -> User:
    user = session.query(User).filter(User.email == email.lower()).first()
    if user is None:
        raise SystemExit(f"❌ Unknown user: {email}")
    return user


def cmd_serve(args):
    import uvicorn

    uvicorn.run("apptrack.main:app", host=args.host, port=args.port, reload=args.reload)


def cmd_init_db(args):
    init_db()
    print("✅ Database tables created")


def cmd_import_csv(args):
    from apptrack.services.csv_import import import_csv

    content = Path(args.file).read_bytes()
    with get_session(get_app_engine()) as session:
        user = _find_user(session, args.user)
        result = import_csv(
            session, user.id, content,
            template_id=args.template,
            skip_duplicates=not args.keep_duplicates,
            dry_run=args.dry_run,
        )

    label = "🔍 Dry run" if args.dry_run else "📥 Imported"
    print(f"{label}: {result['imported']} imported, {result['skipped']} skipped "
          f"(template={result['template']}, confidence={result['confidence']})")
    for error in result["errors"]:
        print(f"   ⚠️  Row {error['row']}: {error['message']}")


def cmd_export(args):
    from apptrack.services.export import export_applications

    with get_session(get_app_engine()) as session:
        user = _find_user(session, args.user)
        result = export_applications(
            session, user.id,
            fmt=args.format,
            include_statistics=args.statistics,
        )
    output = Path(args.output or result.filename)
    output.write_bytes(result.content)
    print(f"📄 {result.record_count} applications → {output}")


def cmd_backup(args):
    from apptrack.services.backup import BackupService, serialize_backup

    with get_session(get_app_engine()) as session:
        user = _find_user(session, args.user)
        backup = BackupService(session, user).create_backup(args.description, "manual")
        meta = serialize_backup(backup)
    print(f"💾 Backup {meta['id']}: {meta['application_count']} applications, "
          f"{meta['data_size']} bytes")


def cmd_send_notifications(args):
    from apptrack.notifications.service import NotificationService
    from apptrack.services import workflows

    now = utcnow()
    with get_session(get_app_engine()) as session:
        results = asyncio.run(NotificationService(session).process_due(now))
        results["workflows_executed"] = workflows.run_scheduled_rules(session, now)
    print(json.dumps(results, indent=2))


def main():
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    parser = argparse.ArgumentParser(
        description='AppTrack - job application tracker',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('serve', help='Run the API with uvicorn')
    p.add_argument('--host', default='127.0.0.1')
    p.add_argument('--port', type=int, default=8000)
    p.add_argument('--reload', action='store_true')
    p.set_defaults(func=cmd_serve)

    p = sub.add_parser('init-db', help='Create database tables')
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser('import-csv', help='Import applications from a CSV file')
    p.add_argument('file')
    p.add_argument('--user', required=True, help='Account email')
    p.add_argument('--template', help='Template id (detected when omitted)')
    p.add_argument('--dry-run', action='store_true')
    p.add_argument('--keep-duplicates', action='store_true', help='Import likely duplicates too')
    p.set_defaults(func=cmd_import_csv)

    p = sub.add_parser('export', help='Export applications to a file')
    p.add_argument('--user', required=True, help='Account email')
    p.add_argument('--format', choices=['csv', 'json', 'pdf'], default='csv')
    p.add_argument('--output', help='Output path (default: generated filename)')
    p.add_argument('--statistics', action='store_true', help='Include statistics (json/pdf)')
    p.set_defaults(func=cmd_export)

    p = sub.add_parser('backup', help='Create a manual backup')
    p.add_argument('--user', required=True, help='Account email')
    p.add_argument('--description', default='CLI backup')
    p.set_defaults(func=cmd_backup)

    p = sub.add_parser('send-notifications', help='Deliver due reminders and digests')
    p.set_defaults(func=cmd_send_notifications)

    args = parser.parse_args()
    try:
        args.func(args)
    except APIError as e:
        print(f"❌ {e.code}: {e.message}")
        sys.exit(1)


if __name__ == '__main__':
    main()
