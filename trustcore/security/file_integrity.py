from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app

from trustcore.extensions import db
from trustcore.models.integrity_baseline import IntegrityBaseline
from trustcore.models.security_event import SecurityEventType
from trustcore.security.errors import NotFoundError
from trustcore.security.security_events import record_security_event
from trustcore.utils import isoformat, utcnow

CHUNK_SIZE = 64 * 1024


@dataclass
class ScanResult:
    new: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    scanned_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "new": self.new,
            "modified": self.modified,
            "deleted": self.deleted,
            "scanned_at": isoformat(self.scanned_at),
        }


def hash_file(path: str) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def _is_noise(name: str, excluded: set[str]) -> bool:
    # dot-dirs (.git, .venv, ...) siempre fuera
    return name in excluded or name.startswith(".")


def compute_hashes() -> dict[str, str]:
    """path relativo (con /) -> sha256, para todas las raíces monitoreadas."""
    cfg = current_app.config
    base_dir = os.path.abspath(cfg["INTEGRITY_BASE_DIR"])
    excluded = set(cfg.get("INTEGRITY_EXCLUDED_DIRS") or ())

    hashes: dict[str, str] = {}

    for root in cfg.get("INTEGRITY_MONITORED_PATHS") or ():
        full = os.path.join(base_dir, root)

        if os.path.isfile(full):
            hashes[os.path.relpath(full, base_dir).replace(os.sep, "/")] = hash_file(full)
            continue

        if not os.path.isdir(full):
            current_app.logger.warning("integrity: monitored path missing: %s", full)
            continue

        for dirpath, dirnames, filenames in os.walk(full):
            dirnames[:] = sorted(d for d in dirnames if not _is_noise(d, excluded))
            for name in filenames:
                if name.startswith("."):
                    continue
                path = os.path.join(dirpath, name)
                if not os.path.isfile(path):
                    continue
                rel = os.path.relpath(path, base_dir).replace(os.sep, "/")
                hashes[rel] = hash_file(path)

    return hashes


def get_baseline() -> IntegrityBaseline | None:
    return IntegrityBaseline.query.order_by(IntegrityBaseline.id.desc()).first()


def generate_baseline(actor_user_id: int | None = None) -> list[dict]:
    hashes = compute_hashes()
    files = [{"path": p, "hash": h} for p, h in sorted(hashes.items())]

    # full replace: una sola fila
    IntegrityBaseline.query.delete(synchronize_session=False)
    db.session.add(IntegrityBaseline(files=files, generated_at=utcnow()))
    db.session.commit()

    current_app.logger.info("integrity baseline generated: %s files", len(files))
    record_security_event(
        event_type=SecurityEventType.INTEGRITY_SCAN,
        user_id=actor_user_id,
        details={"action": "baseline_generated", "file_count": len(files)},
    )
    return files


def scan_for_changes(actor_user_id: int | None = None) -> ScanResult:
    baseline = get_baseline()
    if baseline is None:
        raise NotFoundError("No baseline found. Please generate a baseline first.")

    before = {f["path"]: f["hash"] for f in baseline.files or []}
    # siempre en fresco, nunca cacheado
    current = compute_hashes()

    before_paths, current_paths = set(before), set(current)
    result = ScanResult(
        new=sorted(current_paths - before_paths),
        modified=sorted(p for p in current_paths & before_paths if current[p] != before[p]),
        deleted=sorted(before_paths - current_paths),
    )

    # solo conteos: el audit log no guarda listas de paths
    record_security_event(
        event_type=SecurityEventType.INTEGRITY_SCAN,
        user_id=actor_user_id,
        details={
            "action": "scan",
            "new": len(result.new),
            "modified": len(result.modified),
            "deleted": len(result.deleted),
        },
    )
    return result
