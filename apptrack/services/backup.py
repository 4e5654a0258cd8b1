"""Versioned backups of a user's applications.

A backup is a JSON document ``{metadata, applications, preferences}``
written through a StorageBackend; the Backup row keeps the metadata for
listing and health checks. The checksum is the sha256 of the canonical
JSON of the application list.

Usage:
    service = BackupService(session, user)
    meta = service.create_backup("Before cleanup", backup_type="manual")
    service.restore_backup(meta.id)
"""

import hashlib
import json
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ..config import BackupConfig, get_config
from ..db.models import Application, Backup, User, new_id, utcnow
from ..errors import APIError, NotFoundError, ValidationFailed
from ..schemas import ApplicationResponse, serialize
from ..storage import StorageBackend, get_storage_backend

logger = logging.getLogger(__name__)

BACKUP_FORMAT_VERSION = "1.0"
BACKUP_TYPES = ("manual", "automatic", "migration")
STALE_BACKUP_DAYS = 7

DATE_FIELDS = (
    "applied_date", "response_date", "interview_date", "offer_date",
    "rejection_date", "follow_up_date", "created_at", "updated_at",
)
# Columns restored from a backup record
RESTORABLE_FIELDS = (
    "company", "position", "location", "job_type", "salary_range", "status",
    "priority", "notes", "job_description", "requirements", "contact_person",
    "contact_email", "contact_phone", "company_website", "job_url", "tags",
    "ai_match_score", "ai_insights",
) + DATE_FIELDS


def checksum(records: list[dict]) -> str:
    canonical = json.dumps(records, sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _parse_date(value) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - (parsed.utcoffset() or timedelta(0))
    return parsed


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


# ---------------------------------------------------------------------------
# Validation / repair (pure functions over record dicts)
# ---------------------------------------------------------------------------

def validate_data(records: list[dict]) -> dict:
    """Integrity check of backup records.

    Critical errors: missing id/company/position, unparseable applied_date,
    duplicate ids. Warnings: missing location.
    """
    errors, warnings = [], []
    for index, record in enumerate(records):
        app_id = record.get("id")
        if _is_blank(app_id):
            errors.append({
                "type": "missing_field",
                "message": f"Application at index {index} is missing required field: id",
                "application_id": None,
                "field": "id",
                "severity": "critical",
            })
        for field in ("company", "position"):
            if _is_blank(record.get(field)):
                errors.append({
                    "type": "missing_field",
                    "message": f"Application {app_id} is missing required field: {field}",
                    "application_id": app_id,
                    "field": field,
                    "severity": "critical",
                })
        applied = record.get("applied_date")
        if not _is_blank(applied) and _parse_date(applied) is None:
            errors.append({
                "type": "invalid_date",
                "message": f"Application {app_id} has invalid applied date format",
                "application_id": app_id,
                "field": "applied_date",
                "severity": "critical",
            })
        if _is_blank(record.get("location")):
            warnings.append({
                "type": "missing_optional_field",
                "message": f"Application {app_id} is missing location information",
                "application_id": app_id,
                "field": "location",
            })

    ids = Counter(r.get("id") for r in records if not _is_blank(r.get("id")))
    for app_id, count in ids.items():
        if count > 1:
            errors.append({
                "type": "duplicate_id",
                "message": f"Duplicate application ID found: {app_id}",
                "application_id": app_id,
                "severity": "critical",
            })

    critical = [e for e in errors if e["severity"] == "critical"]
    return {
        "is_valid": not critical,
        "errors": errors,
        "warnings": warnings,
        "statistics": {
            "total_records": len(records),
            "error_count": len(errors),
            "warning_count": len(warnings),
            "critical_count": len(critical),
        },
    }


def repair_data(records: list[dict]) -> dict:
    """Fix what validate_data flags; returns repaired records and the fixes."""
    repaired = [dict(r) for r in records]
    fixes = []

    seen = set()
    for record in repaired:
        if _is_blank(record.get("id")):
            record["id"] = new_id()
            fixes.append(f"Generated missing id {record['id']}")
        elif record["id"] in seen:
            old = record["id"]
            record["id"] = new_id()
            fixes.append(f"Re-assigned duplicate id {old} → {record['id']}")
        seen.add(record["id"])

        if _is_blank(record.get("company")):
            record["company"] = "Unknown Company"
            fixes.append(f"Set company of {record['id']} to 'Unknown Company'")
        if _is_blank(record.get("position")):
            record["position"] = "Unknown Position"
            fixes.append(f"Set position of {record['id']} to 'Unknown Position'")

        for field in DATE_FIELDS:
            value = record.get(field)
            if not _is_blank(value) and _parse_date(value) is None:
                record[field] = None
                fixes.append(f"Dropped invalid {field} of {record['id']}")

    return {"applications": repaired, "fixes_applied": fixes, "fix_count": len(fixes)}


def diff_records(old: list[dict], new: list[dict]) -> dict:
    """Applications added, removed and modified (field level) from old to new."""
    old_by_id = {r.get("id"): r for r in old}
    new_by_id = {r.get("id"): r for r in new}

    added = [r for app_id, r in new_by_id.items() if app_id not in old_by_id]
    removed = [r for app_id, r in old_by_id.items() if app_id not in new_by_id]
    modified = []
    for app_id, record in new_by_id.items():
        before = old_by_id.get(app_id)
        if before is None:
            continue
        changes = {
            key: {"old": before.get(key), "new": record.get(key)}
            for key in sorted(set(before) | set(record))
            if key != "updated_at" and before.get(key) != record.get(key)
        }
        if changes:
            modified.append({
                "id": app_id,
                "company": record.get("company"),
                "position": record.get("position"),
                "changes": changes,
            })
    return {"added": added, "removed": removed, "modified": modified}


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class BackupService:
    def __init__(
        self,
        session: Session,
        user: User,
        config: Optional[BackupConfig] = None,
        storage: Optional[StorageBackend] = None,
    ):
        self.session = session
        self.user = user
        self.config = config or get_config().backup
        self.storage = storage or get_storage_backend(self.config)

    # --- helpers ---

    def _current_records(self) -> list[dict]:
        apps = (
            self.session.query(Application)
            .filter(Application.user_id == self.user.id)
            .order_by(Application.created_at.asc())
            .all()
        )
        return [serialize(ApplicationResponse, a) for a in apps]

    def _backups(self) -> list[Backup]:
        return (
            self.session.query(Backup)
            .filter(Backup.user_id == self.user.id)
            .order_by(Backup.timestamp.desc(), Backup.created_at.desc())
            .all()
        )

    def _get(self, backup_id: str) -> Backup:
        backup = (
            self.session.query(Backup)
            .filter(Backup.id == backup_id, Backup.user_id == self.user.id)
            .first()
        )
        if backup is None:
            raise NotFoundError(f"Backup not found: {backup_id}")
        return backup

    def _load(self, backup: Backup) -> Optional[dict]:
        raw = self.storage.get(backup.storage_key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Backup {backup.id} payload is not valid JSON")
            return None

    def _load_records(self, backup: Backup) -> list[dict]:
        payload = self._load(backup)
        if payload is None:
            raise APIError(422, "BACKUP_CORRUPTED", f"Backup data unreadable: {backup.id}")
        return payload.get("applications", [])

    def _is_corrupted(self, backup: Backup) -> bool:
        payload = self._load(backup)
        if payload is None:
            return True
        records = payload.get("applications", [])
        return checksum(records) != backup.checksum or not validate_data(records)["is_valid"]

    # --- operations ---

    def create_backup(
        self,
        description: str = "Automatic backup",
        backup_type: str = "automatic",
        tags: Optional[list[str]] = None,
        now: Optional[datetime] = None,
        keep: tuple = (),
    ) -> Backup:
        if backup_type not in BACKUP_TYPES:
            raise ValidationFailed(f"Invalid backup type: {backup_type}")
        now = now or utcnow()
        records = self._current_records()

        previous = self._backups()
        parent = previous[0] if previous else None
        changes_summary = None
        if parent is not None:
            try:
                diff = diff_records(self._load_records(parent), records)
                changes_summary = {k: len(v) for k, v in diff.items()}
            except APIError:
                logger.warning(f"Previous backup {parent.id} unreadable, no change summary")

        backup = Backup(
            id=new_id(),
            user_id=self.user.id,
            timestamp=now,
            version=BACKUP_FORMAT_VERSION,
            description=description,
            checksum=checksum(records),
            backup_type=backup_type,
            application_count=len(records),
            parent_version=parent.id if parent else None,
            changes_summary=changes_summary,
            tags=tags or [],
        )
        backup.storage_key = f"{self.user.id}/{backup.id}.json"

        payload = {
            "metadata": {
                "id": backup.id,
                "timestamp": now.isoformat(),
                "version": backup.version,
                "description": description,
                "type": backup_type,
                "application_count": len(records),
                "checksum": backup.checksum,
                "parent_version": backup.parent_version,
                "tags": backup.tags,
            },
            "applications": records,
            "preferences": self.user.preferences or {},
        }
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        backup.data_size = len(data)
        self.storage.put(backup.storage_key, data)

        self.session.add(backup)
        self.session.flush()
        logger.info(
            f"Backup {backup.id} created for user {self.user.id}: "
            f"{len(records)} applications, {len(data)} bytes"
        )
        self._prune(keep=keep)
        return backup

    def _prune(self, keep: tuple = ()) -> list[str]:
        """Delete the oldest backups beyond max_backups, never those in ``keep``."""
        backups = self._backups()
        excess = len(backups) - self.config.max_backups
        removed = []
        for backup in reversed(backups):
            if excess <= 0:
                break
            if backup.id in keep:
                continue
            self.delete_backup(backup.id)
            removed.append(backup.id)
            excess -= 1
        if removed:
            logger.info(f"Pruned {len(removed)} old backups for user {self.user.id}")
        return removed

    def list_backups(self) -> list[Backup]:
        return self._backups()

    def history(self, limit: int = 20) -> list[Backup]:
        return self._backups()[:limit]

    def delete_backup(self, backup_id: str) -> None:
        backup = self._get(backup_id)
        self.storage.delete(backup.storage_key)
        self.session.delete(backup)
        self.session.flush()
        logger.info(f"Deleted backup {backup_id}")

    def restore_backup(self, backup_id: str, now: Optional[datetime] = None) -> dict:
        """Bring the user's applications back to the backup's state.

        Applications whose id is in the backup are updated in place, so their
        reminders and history survive; the rest are deleted. A ``pre-restore``
        backup of the current state is taken first when
        the user has any applications.
        """
        backup = self._get(backup_id)
        records = self._load_records(backup)
        if checksum(records) != backup.checksum:
            raise APIError(422, "BACKUP_CORRUPTED", "Backup checksum mismatch")

        validation = validate_data(records)
        if not validation["is_valid"]:
            critical = [e["message"] for e in validation["errors"] if e["severity"] == "critical"]
            raise APIError(
                422, "BACKUP_INVALID",
                f"Backup validation failed: {', '.join(critical[:5])}",
                {"errors": validation["errors"]},
            )

        current = {
            app.id: app
            for app in self.session.query(Application)
            .filter(Application.user_id == self.user.id)
            .all()
        }
        pre_restore_id = None
        if current:
            pre_restore = self.create_backup(
                "Pre-restore backup", "automatic", tags=["pre-restore"], now=now,
                keep=(backup_id,),
            )
            pre_restore_id = pre_restore.id

        # Rows kept by id retain their reminders and history
        restored_ids = {record["id"] for record in records}
        removed = [app for app_id, app in current.items() if app_id not in restored_ids]
        for app in removed:
            self.session.delete(app)
        self.session.flush()

        updated = inserted = 0
        for record in records:
            values = self._restorable_values(record)
            app = current.get(record["id"])
            if app is not None:
                for field, value in values.items():
                    setattr(app, field, value)
                updated += 1
                continue
            app_id = record["id"]
            if self.session.get(Application, app_id) is not None:
                # id taken by another account
                app_id = new_id()
            self.session.add(Application(id=app_id, user_id=self.user.id, **values))
            inserted += 1
        self.session.flush()

        logger.info(
            f"Restored backup {backup_id} for user {self.user.id}: "
            f"{len(removed)} removed, {updated} updated, {inserted} inserted"
        )
        return {
            "backup_id": backup_id,
            "restored": len(records),
            "updated": updated,
            "inserted": inserted,
            "removed": len(removed),
            "pre_restore_backup_id": pre_restore_id,
            "warnings": validation["warnings"],
        }

    @staticmethod
    def _restorable_values(record: dict) -> dict:
        values = {}
        for field in RESTORABLE_FIELDS:
            if field not in record:
                continue
            value = record[field]
            values[field] = _parse_date(value) if field in DATE_FIELDS else value
        for field in ("requirements", "tags"):
            if field in values:
                values[field] = values[field] or []
        return values

    def validate_backup(self, backup_id: Optional[str] = None) -> dict:
        """Validate a stored backup, or the live data when no id is given."""
        if backup_id is None:
            return validate_data(self._current_records())
        backup = self._get(backup_id)
        records = self._load_records(backup)
        result = validate_data(records)
        result["checksum_valid"] = checksum(records) == backup.checksum
        return result

    def compare_versions(self, version_a: str, version_b: str = "current") -> dict:
        old = self._load_records(self._get(version_a))
        if version_b == "current":
            new = self._current_records()
        else:
            new = self._load_records(self._get(version_b))
        diff = diff_records(old, new)
        diff["summary"] = {k: len(diff[k]) for k in ("added", "removed", "modified")}
        return diff

    def health(self, now: Optional[datetime] = None) -> dict:
        now = now or utcnow()
        backups = self._backups()
        corrupted = [b.id for b in backups if self._is_corrupted(b)]
        latest = backups[0] if backups else None
        latest_age_hours = (
            round((now - latest.timestamp).total_seconds() / 3600, 1) if latest else None
        )

        recommendations = []
        if not backups:
            recommendations.append("Create your first backup to protect your data")
        elif len(backups) < 3:
            recommendations.append("Consider creating more frequent backups for better data protection")
        if latest and now - latest.timestamp > timedelta(days=STALE_BACKUP_DAYS):
            recommendations.append("Latest backup is over a week old - consider creating a new backup")
        if corrupted:
            recommendations.append(
                f"{len(corrupted)} corrupted backup(s) found - consider cleaning up"
            )
        if len(backups) >= self.config.max_backups - 1:
            recommendations.append(
                f"Approaching the limit of {self.config.max_backups} backups; "
                "the oldest will be removed automatically"
            )

        return {
            "total_backups": len(backups),
            "total_size": sum(b.data_size for b in backups),
            "latest_backup": latest.timestamp.isoformat() if latest else None,
            "latest_backup_age_hours": latest_age_hours,
            "oldest_backup": backups[-1].timestamp.isoformat() if backups else None,
            "corrupted_backups": corrupted,
            "corrupted_count": len(corrupted),
            "status": "healthy" if backups and not corrupted else "attention",
            "recommendations": recommendations,
        }

    def cleanup_corrupted(self) -> list[str]:
        removed = [b.id for b in self._backups() if self._is_corrupted(b)]
        for backup_id in removed:
            self.delete_backup(backup_id)
        if removed:
            logger.warning(f"Removed {len(removed)} corrupted backups for user {self.user.id}")
        return removed

    def statistics(self, now: Optional[datetime] = None) -> dict:
        now = now or utcnow()
        backups = self._backups()
        total_size = sum(b.data_size for b in backups)

        def _since(delta: timedelta) -> int:
            return sum(1 for b in backups if b.timestamp > now - delta)

        return {
            "total_backups": len(backups),
            "total_size": total_size,
            "average_size": round(total_size / len(backups), 1) if backups else 0,
            "by_type": dict(Counter(b.backup_type for b in backups)),
            "oldest_backup": backups[-1].timestamp.isoformat() if backups else None,
            "newest_backup": backups[0].timestamp.isoformat() if backups else None,
            "frequency": {
                "daily": _since(timedelta(days=1)),
                "weekly": _since(timedelta(days=7)),
                "monthly": _since(timedelta(days=30)),
            },
        }


def serialize_backup(backup: Backup) -> dict:
    return {
        "id": backup.id,
        "timestamp": backup.timestamp.isoformat(),
        "version": backup.version,
        "description": backup.description,
        "data_size": backup.data_size,
        "checksum": backup.checksum,
        "type": backup.backup_type,
        "application_count": backup.application_count,
        "parent_version": backup.parent_version,
        "changes_summary": backup.changes_summary,
        "tags": backup.tags or [],
    }
