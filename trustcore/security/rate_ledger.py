"""
Ledger de timestamps por (ip, endpoint) para el sliding-window log.

- ``InMemoryRateLedger``: una sola instancia; se pierde al reiniciar.
- ``DatabaseRateLedger``: filas en ``rate_ledger_hits``; todas las instancias
  que comparten la DB ven el mismo conteo.
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import deque

from trustcore.extensions import db
from trustcore.models.rate_limit import RateLedgerHit

logger = logging.getLogger(__name__)


class RateLedger(ABC):
    @abstractmethod
    def record(self, ip: str, endpoint: str, now: float, window_sec: float) -> int:
        """Añade ``now``, descarta lo anterior a ``now - window_sec`` y devuelve el conteo."""

    @abstractmethod
    def collect_garbage(self, now: float, max_idle_sec: float) -> int:
        """Borra las entradas sin actividad en ``max_idle_sec``. Devuelve cuántas."""


class InMemoryRateLedger(RateLedger):
    def __init__(self):
        # ip -> endpoint -> deque[timestamps]
        self._store: dict[str, dict[str, deque[float]]] = {}
        # un lock por ip; _meta solo protege altas/bajas de ips
        self._locks: dict[str, threading.Lock] = {}
        self._meta = threading.Lock()

    def _lock_for(self, ip: str) -> threading.Lock:
        with self._meta:
            lock = self._locks.get(ip)
            if lock is None:
                lock = self._locks[ip] = threading.Lock()
                self._store[ip] = {}
            return lock

    def record(self, ip: str, endpoint: str, now: float, window_sec: float) -> int:
        while True:
            lock = self._lock_for(ip)
            with lock:
                # el gc pudo retirar la ip mientras esperábamos el lock
                if self._locks.get(ip) is not lock:
                    continue

                q = self._store[ip].setdefault(endpoint, deque())
                q.append(now)

                cutoff = now - window_sec
                while q and q[0] < cutoff:
                    q.popleft()

                return len(q)

    def collect_garbage(self, now: float, max_idle_sec: float) -> int:
        removed = 0
        with self._meta:
            ips = list(self._locks.items())

        for ip, lock in ips:
            with lock:
                per_ip = self._store.get(ip)
                if per_ip is None:
                    continue

                for endpoint in list(per_ip):
                    # una entrada está ociosa si su último hit es viejo
                    if now - per_ip[endpoint][-1] >= max_idle_sec:
                        del per_ip[endpoint]
                        removed += 1

                if not per_ip:
                    with self._meta:
                        self._store.pop(ip, None)
                        self._locks.pop(ip, None)

        if removed:
            logger.debug("rate ledger gc: removed %s idle keys", removed)
        return removed

    def size(self) -> int:
        with self._meta:
            return sum(len(v) for v in self._store.values())


class DatabaseRateLedger(RateLedger):
    def record(self, ip: str, endpoint: str, now: float, window_sec: float) -> int:
        cutoff = now - window_sec
        db.session.add(RateLedgerHit(ip=ip, endpoint=endpoint, ts=now))
        RateLedgerHit.query.filter(
            RateLedgerHit.ip == ip,
            RateLedgerHit.endpoint == endpoint,
            RateLedgerHit.ts < cutoff,
        ).delete(synchronize_session=False)
        db.session.commit()

        return RateLedgerHit.query.filter(
            RateLedgerHit.ip == ip,
            RateLedgerHit.endpoint == endpoint,
            RateLedgerHit.ts >= cutoff,
        ).count()

    def collect_garbage(self, now: float, max_idle_sec: float) -> int:
        removed = RateLedgerHit.query.filter(
            RateLedgerHit.ts <= now - max_idle_sec
        ).delete(synchronize_session=False)
        db.session.commit()
        return removed


LEDGER_BACKENDS = {
    "memory": InMemoryRateLedger,
    "database": DatabaseRateLedger,
}


def build_ledger(backend: str) -> RateLedger:
    try:
        return LEDGER_BACKENDS[backend]()
    except KeyError:
        raise ValueError(f"unknown RATE_LIMIT_BACKEND: {backend!r}") from None
