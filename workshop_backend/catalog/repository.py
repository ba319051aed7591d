"""
Accès générique aux collections de contenu (trainers, faqs, testimonials, ...).

Même contrat que les autres repositories de contenu:
- lecture: [] / None en cas d'erreur Supabase (loggée)
- écriture: None / False en cas d'erreur (loggée), la vue répond 400
"""
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from workshop_backend.infra import supabase_client
from workshop_backend.registrations.models import now_ms

logger = logging.getLogger(__name__)

# module workshop_backend.catalog.repository
def _first(res: Any) -> Optional[dict]:
    rows = getattr(res, "data", None) or []
    if isinstance(rows, list):
        return rows[0] if rows else None
    return rows or None


class CollectionRepository:
    """CRUD d'une table Supabase avec horodatage createdAt/updatedAt (epoch ms)."""

    def __init__(
        self,
        table: str,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        client_factory: Optional[Callable[[], Any]] = None,
        public_client_factory: Optional[Callable[[], Any]] = None,
    ):
        self.table = table
        self.order_by = order_by
        self.descending = descending
        self._client_factory = client_factory or supabase_client.get_service_supabase
        self._public_client_factory = public_client_factory or client_factory or supabase_client.get_supabase

    def _read(self):
        return self._public_client_factory().table(self.table)

    def _write(self):
        return self._client_factory().table(self.table)

    def list(self, filters: Optional[Dict[str, Any]] = None, order_by: Optional[str] = None) -> List[dict]:
        try:
            q = self._read().select("*")
            for field, value in (filters or {}).items():
                if value is not None:
                    q = q.eq(field, value)
            column = order_by or self.order_by
            if column:
                q = q.order(column, desc=self.descending)
            res = q.execute()
            return res.data or []
        except Exception:
            logger.exception("catalog.repository.list failed table=%s", self.table)
            return []

    def get(self, item_id: str) -> Optional[dict]:
        if not item_id:
            return None
        try:
            res = self._read().select("*").eq("id", item_id).limit(1).execute()
            return _first(res)
        except Exception:
            logger.exception("catalog.repository.get failed table=%s id=%s", self.table, item_id)
            return None

    def find_one(self, field: str, value: Any) -> Optional[dict]:
        try:
            res = self._read().select("*").eq(field, value).limit(1).execute()
            return _first(res)
        except Exception:
            logger.exception("catalog.repository.find_one failed table=%s %s=%s", self.table, field, value)
            return None

    def create(self, data: Dict[str, Any]) -> Optional[dict]:
        ts = now_ms()
        try:
            res = self._write().insert({**data, "createdAt": ts, "updatedAt": ts}).execute()
            return _first(res)
        except Exception:
            logger.exception("catalog.repository.create failed table=%s", self.table)
            return None

    def update(self, item_id: str, data: Dict[str, Any]) -> Optional[dict]:
        try:
            res = self._write().update({**data, "updatedAt": now_ms()}).eq("id", item_id).execute()
            return _first(res)
        except Exception:
            logger.exception("catalog.repository.update failed table=%s id=%s", self.table, item_id)
            return None

    def update_if(self, item_id: str, data: Dict[str, Any], expected: Dict[str, Any]) -> Optional[dict]:
        """
        Update conditionnel: n'écrit que si la ligne porte encore les valeurs `expected`.
        None si la ligne a changé entre-temps (ou en cas d'erreur, loggée).
        """
        try:
            q = self._write().update({**data, "updatedAt": now_ms()}).eq("id", item_id)
            for field, value in expected.items():
                q = q.is_(field, "null") if value is None else q.eq(field, value)
            return _first(q.execute())
        except Exception:
            logger.exception("catalog.repository.update_if failed table=%s id=%s", self.table, item_id)
            return None

    def upsert(self, rows: List[Dict[str, Any]], on_conflict: str) -> bool:
        if not rows:
            return True
        ts = now_ms()
        try:
            self._write().upsert([{**r, "updatedAt": ts} for r in rows], on_conflict=on_conflict).execute()
            return True
        except Exception:
            logger.exception("catalog.repository.upsert failed table=%s", self.table)
            return False

    def delete(self, item_id: str) -> bool:
        try:
            res = self._write().delete().eq("id", item_id).execute()
            return bool(res.data)
        except Exception:
            logger.exception("catalog.repository.delete failed table=%s id=%s", self.table, item_id)
            return False

    def bulk_update(self, ids: Iterable[str], data: Dict[str, Any]) -> int:
        ids = [str(i) for i in ids]
        if not ids:
            return 0
        try:
            res = self._write().update({**data, "updatedAt": now_ms()}).in_("id", ids).execute()
            return len(res.data or [])
        except Exception:
            logger.exception("catalog.repository.bulk_update failed table=%s ids=%s", self.table, ids)
            return 0

    def reorder(self, items: Iterable[Dict[str, Any]]) -> int:
        """Applique {id, order} ligne par ligne; renvoie le nombre de lignes mises à jour."""
        updated = 0
        for item in items:
            if self.update(str(item["id"]), {"order": int(item["order"])}):
                updated += 1
        return updated
