"""
Accès aux workshops (table 'workshops').

Le nombre d'inscrits n'est pas stocké: il est dérivé à la lecture en comptant
les inscriptions non annulées, ce qui évite tout read-modify-write concurrent.
"""
import logging
from typing import Any, Dict, List, Optional

from workshop_backend.catalog.repository import CollectionRepository
from workshop_backend.errors import StoreError

logger = logging.getLogger(__name__)


class WorkshopRepository(CollectionRepository):
    def __init__(self, **kwargs: Any):
        super().__init__("workshops", order_by="startDate", **kwargs)


# module workshop_backend.workshops.repository
def _apply_enrollment(workshop: Dict[str, Any], enrolled: Optional[int]) -> Dict[str, Any]:
    capacity = int(workshop.get("capacity") or 0)
    seats_left = max(capacity - enrolled, 0) if enrolled is not None else None
    return {**workshop, "enrolled": enrolled, "seatsLeft": seats_left}

def with_enrollment(workshop: Dict[str, Any], registrations) -> Dict[str, Any]:
    """
    Ajoute enrolled/seatsLeft au workshop.
    - Comptage indisponible: enrolled = None (la fiche reste affichable).
    """
    try:
        enrolled: Optional[int] = registrations.count_for_workshop(str(workshop.get("id")))
    except StoreError:
        logger.warning("workshops.repository enrollment unavailable id=%s", workshop.get("id"))
        enrolled = None
    return _apply_enrollment(workshop, enrolled)

def with_enrollments(workshops: List[Dict[str, Any]], registrations) -> List[Dict[str, Any]]:
    """Version liste: un seul comptage groupé pour tous les workshops."""
    try:
        counts: Optional[Dict[str, int]] = registrations.counts_for_workshops([str(w.get("id")) for w in workshops])
    except StoreError:
        logger.warning("workshops.repository enrollment unavailable count=%s", len(workshops))
        counts = None
    return [_apply_enrollment(w, counts.get(str(w.get("id")), 0) if counts is not None else None) for w in workshops]
