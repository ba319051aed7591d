"""
Endpoints des collections de contenu du site vitrine et du back-office.

Chaque collection (trainers, testimonials, faqs, ...) partage le même contrat:
- GET "" / GET "/{id}" publics (filtres simples en query string, tri sur 'order')
- POST / PUT / DELETE réservés aux admins, POST "/bulk/reorder" pour l'ordre d'affichage
Les spécificités (champs requis, contrôles, statistiques, routes en plus) sont
déclarées dans COLLECTIONS.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from workshop_backend.app_setup.container import collection_provider
from workshop_backend.catalog.repository import CollectionRepository
from workshop_backend.errors import ConflictError, NotFoundError, PreconditionError, StoreError, ValidationError
from workshop_backend.registrations.models import now_ms
from workshop_backend.utils import validators
from workshop_backend.utils.rate_limit import optional_rate_limit
from workshop_backend.utils.security import require_admin, require_roles

READ_ONLY_FIELDS = ("id", "createdAt", "updatedAt")
CAS_ATTEMPTS = 5

RouteHook = Callable[[APIRouter, "CollectionSpec", Callable[[], CollectionRepository]], None]


def _display_defaults() -> Dict[str, Any]:
    return {"isActive": True, "order": 0}


@dataclass(frozen=True)
class CollectionSpec:
    table: str
    prefix: str
    label: str
    required: Tuple[str, ...] = ()
    filters: Tuple[str, ...] = ()
    checks: Tuple[Callable[[Dict[str, Any]], None], ...] = field(default_factory=tuple)
    defaults: Callable[[], Dict[str, Any]] = _display_defaults
    order_by: str = "order"
    descending: bool = False
    # corps {"<ids_key>": [id, ...]} accepté par /bulk/reorder, en plus de {"updates": [...]}
    ids_key: Optional[str] = None
    stats: Optional[Callable[[List[dict]], Dict[str, Any]]] = None
    unique: Tuple[str, ...] = ()
    search: Tuple[str, ...] = ()
    admin_read: bool = False
    routes: Tuple[RouteHook, ...] = ()


def _check(field_name: str, validator: Callable[[Any], Any]) -> Callable[[Dict[str, Any]], None]:
    """Contrôle appliqué seulement si le champ est présent (création et mise à jour)."""
    def _run(data: Dict[str, Any]) -> None:
        if field_name in data:
            validator(data[field_name])
    return _run

def _non_negative(field_name: str) -> Callable[[Dict[str, Any]], None]:
    def _run(data: Dict[str, Any]) -> None:
        if field_name in data:
            try:
                ok = float(data[field_name]) >= 0
            except (TypeError, ValueError):
                ok = False
            if not ok:
                raise ValueError(f"{field_name} must be a number >= 0")
    return _run

def _query_value(raw: str) -> Any:
    lowered = raw.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    return raw

def _clean_payload(body: Any) -> Dict[str, Any]:
    if not isinstance(body, dict):
        raise ValidationError("Invalid request body")
    return {k: v for k, v in body.items() if k not in READ_ONLY_FIELDS}

async def _json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        raise ValidationError("Invalid JSON body") from None

def _number(row: Dict[str, Any], name: str) -> float:
    try:
        return float(row.get(name) or 0)
    except (TypeError, ValueError):
        return 0.0

def _count_by(rows: List[dict], name: str, values: Tuple[str, ...]) -> Dict[str, int]:
    return {value: sum(1 for r in rows if r.get(name) == value) for value in values}

def _active(rows: List[dict]) -> int:
    return sum(1 for r in rows if r.get("isActive"))


# --- statistiques /stats/all ---

def faq_stats(rows: List[dict]) -> Dict[str, Any]:
    return {
        "total": len(rows),
        "byCategory": _count_by(rows, "category", ("general", "technical", "pricing", "registration", "certification")),
        "active": _active(rows),
        "totalViews": int(sum(_number(r, "views") for r in rows)),
        "mostViewed": sorted(rows, key=lambda r: _number(r, "views"), reverse=True)[:5],
        "mostHelpful": sorted(rows, key=lambda r: _number(r, "helpful"), reverse=True)[:5],
    }

def scholarship_stats(rows: List[dict]) -> Dict[str, Any]:
    return {
        "total": len(rows),
        "byCategory": _count_by(rows, "category", ("merit", "financial", "diversity", "need-based")),
        "active": _active(rows),
        "totalAwarded": sum(len(r.get("awardedTo") or []) for r in rows),
        "totalValue": sum(_number(r, "amount") * len(r.get("awardedTo") or []) for r in rows),
    }

def company_stats(rows: List[dict]) -> Dict[str, Any]:
    return {
        "total": len(rows),
        "active": _active(rows),
        "totalEmployees": int(sum(_number(r, "employees") for r in rows)),
        "totalTestimonials": int(sum(_number(r, "testimonials") for r in rows)),
        "totalTrainers": int(sum(_number(r, "trainersCount") for r in rows)),
    }

def feature_stats(rows: List[dict]) -> Dict[str, Any]:
    active = _active(rows)
    return {
        "total": len(rows),
        "byCategory": _count_by(rows, "category", ("core", "advanced", "premium")),
        "active": active,
        "inactive": len(rows) - active,
    }


# --- mises à jour conditionnelles (compteurs, attributions) ---

def increment_counter(repo: CollectionRepository, item_id: str, name: str) -> Optional[dict]:
    """+1 sur un compteur, relu et réécrit tant qu'un autre appel l'a modifié entre-temps."""
    for _ in range(CAS_ATTEMPTS):
        current = repo.get(item_id)
        if not current:
            return None
        value = current.get(name)
        updated = repo.update_if(item_id, {name: int(value or 0) + 1}, {name: value})
        if updated:
            return updated
    raise ConflictError("Concurrent update, please retry")

def award_scholarship(repo: CollectionRepository, item_id: str, user_id: str) -> dict:
    """Ajoute user_id à awardedTo et consomme une place; refusé sans place ou si déjà attribuée."""
    for _ in range(CAS_ATTEMPTS):
        current = repo.get(item_id)
        if not current:
            raise NotFoundError("Scholarship not found")
        slots = current.get("availableSlots")
        awarded = list(current.get("awardedTo") or [])
        if int(slots or 0) <= 0:
            raise PreconditionError("No available slots for this scholarship")
        if user_id in awarded:
            raise ConflictError("User already has this scholarship")
        updated = repo.update_if(
            item_id,
            {"awardedTo": awarded + [user_id], "availableSlots": int(slots) - 1},
            {"availableSlots": slots},
        )
        if updated:
            return updated
    raise ConflictError("Concurrent update, please retry")


# --- routes propres à une collection ---

def approve_route(router: APIRouter, spec: CollectionSpec, provider) -> None:
    @router.patch("/{item_id}/approve", dependencies=[Depends(require_admin)])
    async def approve_item(item_id: str, request: Request, repo: CollectionRepository = Depends(provider)):
        body = await _json(request)
        is_approved = body.get("isApproved", True) if isinstance(body, dict) else True
        if not isinstance(is_approved, bool):
            raise ValidationError("isApproved must be a boolean")
        updated = await run_in_threadpool(repo.update, item_id, {"isApproved": is_approved})
        if not updated:
            raise NotFoundError(f"{spec.label} not found")
        verb = "approved" if is_approved else "rejected"
        return {"success": True, "message": f"{spec.label} {verb} successfully", "data": updated}

def rating_route(router: APIRouter, spec: CollectionSpec, provider) -> None:
    @router.patch("/{item_id}/rating", dependencies=[Depends(require_admin)])
    async def update_rating(item_id: str, request: Request, repo: CollectionRepository = Depends(provider)):
        body = await _json(request)
        body = body if isinstance(body, dict) else {}
        try:
            rating = validators.validate_rating(body.get("rating"))
        except ValueError as e:
            raise ValidationError(str(e)) from None
        review_count = int(body.get("reviewCount") or 0)
        updated = await run_in_threadpool(repo.update, item_id, {"rating": rating, "reviewCount": review_count})
        if not updated:
            raise NotFoundError(f"{spec.label} not found")
        return {"success": True, "message": f"{spec.label} rating updated successfully", "data": updated}

def helpful_route(router: APIRouter, spec: CollectionSpec, provider) -> None:
    @router.post("/{item_id}/helpful", dependencies=[Depends(optional_rate_limit(times=30, seconds=60))])
    async def record_helpful(item_id: str, request: Request, repo: CollectionRepository = Depends(provider)):
        """Vote public 'utile' / 'pas utile'."""
        body = await _json(request)
        is_helpful = body.get("isHelpful") if isinstance(body, dict) else None
        if not isinstance(is_helpful, bool):
            raise ValidationError("isHelpful must be a boolean")
        counter = "helpful" if is_helpful else "unhelpful"
        if not await run_in_threadpool(increment_counter, repo, item_id, counter):
            raise NotFoundError(f"{spec.label} not found")
        return {"success": True, "message": "Thank you for your feedback!"}

def award_route(router: APIRouter, spec: CollectionSpec, provider) -> None:
    @router.post("/{item_id}/award", dependencies=[Depends(require_admin)])
    async def award_item(item_id: str, request: Request, repo: CollectionRepository = Depends(provider)):
        body = await _json(request)
        user_id = body.get("userId") if isinstance(body, dict) else None
        if not isinstance(user_id, str) or not user_id.strip():
            raise ValidationError("User ID is required")
        updated = await run_in_threadpool(award_scholarship, repo, item_id, user_id.strip())
        return {"success": True, "message": "Scholarship awarded successfully", "data": updated}


def _user_defaults() -> Dict[str, Any]:
    return {"phone": "", "workshop": "", "status": "registered", "notes": "", "registeredAt": now_ms()}


COLLECTIONS: List[CollectionSpec] = [
    CollectionSpec(
        "trainers", "/api/trainers", "Trainer",
        required=("name", "email", "phone", "bio", "expertise"),
        filters=("isActive",),
        checks=(
            _check("email", validators.validate_email),
            _check("phone", validators.validate_phone),
            _check("expertise", lambda v: validators.validate_non_empty_list(v, "expertise")),
        ),
        routes=(rating_route,),
    ),
    CollectionSpec(
        "testimonials", "/api/testimonials", "Testimonial",
        required=("name", "company", "role", "review", "workshopId", "rating"),
        filters=("isApproved", "isFeatured", "isActive", "workshopId"),
        checks=(_check("rating", lambda v: validators.validate_rating(v, 1, 5)),),
        routes=(approve_route,),
    ),
    CollectionSpec(
        "faqs", "/api/faqs", "FAQ",
        required=("question", "answer"),
        filters=("category", "workshopId", "isActive"),
        defaults=lambda: {**_display_defaults(), "views": 0, "helpful": 0, "unhelpful": 0},
        ids_key="faqIds",
        stats=faq_stats,
        routes=(helpful_route,),
    ),
    CollectionSpec(
        "pricing_plans", "/api/pricing-plans", "Pricing plan",
        required=("name", "price", "duration", "description", "features"),
        filters=("isActive",),
        checks=(_non_negative("price"), _check("features", lambda v: validators.validate_non_empty_list(v, "feature"))),
    ),
    CollectionSpec(
        "scholarships", "/api/scholarships", "Scholarship",
        required=("name", "description", "criteria"),
        filters=("category", "isActive"),
        checks=(
            _check("criteria", lambda v: validators.validate_non_empty_list(v, "criterion")),
            _non_negative("availableSlots"),
            _non_negative("amount"),
        ),
        defaults=lambda: {**_display_defaults(), "awardedTo": [], "availableSlots": 0},
        ids_key="scholarshipIds",
        stats=scholarship_stats,
        routes=(award_route,),
    ),
    CollectionSpec(
        "companies", "/api/companies", "Company",
        required=("name", "email", "phone"),
        checks=(_check("email", validators.validate_email), _check("phone", validators.validate_phone)),
        ids_key="companyIds",
        stats=company_stats,
    ),
    CollectionSpec(
        "features", "/api/features", "Feature",
        required=("title", "description", "benefits", "features"),
        filters=("category", "isActive"),
        checks=(
            _check("benefits", lambda v: validators.validate_non_empty_list(v, "benefit")),
            _check("features", lambda v: validators.validate_non_empty_list(v, "feature")),
        ),
        ids_key="featureIds",
        stats=feature_stats,
    ),
    CollectionSpec("content", "/api/content", "Content", required=("section",), filters=("section",)),
    CollectionSpec("videos", "/api/videos", "Video", required=("title", "youtubeUrl"), filters=("isActive",)),
    # contacts inscrits gérés depuis le back-office (lecture réservée aux admins)
    CollectionSpec(
        "users", "/api/users", "User",
        required=("name", "email"),
        filters=("status",),
        checks=(_check("email", validators.validate_email),),
        defaults=_user_defaults,
        order_by="createdAt",
        descending=True,
        unique=("email",),
        search=("name", "email"),
        admin_read=True,
    ),
]

PROVIDERS: Dict[str, Callable[[], CollectionRepository]] = {
    spec.table: collection_provider(spec.table, order_by=spec.order_by, descending=spec.descending)
    for spec in COLLECTIONS
}
get_settings_store = collection_provider("settings", order_by="key")

def _validate(spec: CollectionSpec, data: Dict[str, Any], *, creating: bool) -> None:
    if creating:
        missing = [f for f in spec.required if data.get(f) in (None, "", [])]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    for check in spec.checks:
        try:
            check(data)
        except ValueError as e:
            raise ValidationError(str(e)) from None

def _ensure_unique(spec: CollectionSpec, repo: CollectionRepository, data: Dict[str, Any], item_id: Optional[str] = None) -> None:
    for name in spec.unique:
        if name not in data:
            continue
        existing = repo.find_one(name, data[name])
        if existing and str(existing.get("id")) != str(item_id):
            raise ValidationError(f"{spec.label} with this {name} already exists")

def _matches(spec: CollectionSpec, row: Dict[str, Any], needle: str) -> bool:
    return any(needle in str(row.get(name) or "").lower() for name in spec.search)

def _reorder_updates(spec: CollectionSpec, body: Any) -> List[Dict[str, Any]]:
    """{updates:[{id, order}]} ou {<ids_key>: [id, ...]} (l'ordre devient l'index)."""
    body = body if isinstance(body, dict) else {}
    if spec.ids_key and spec.ids_key in body:
        ids = body[spec.ids_key]
        if not isinstance(ids, list) or not ids or not all(isinstance(i, str) and i for i in ids):
            raise ValidationError(f"{spec.ids_key} must be a non-empty array of ids")
        return [{"id": item_id, "order": index} for index, item_id in enumerate(ids)]
    updates = body.get("updates")
    if not isinstance(updates, list) or not updates:
        raise ValidationError("Updates must be a non-empty array")
    for entry in updates:
        if not isinstance(entry, dict) or not entry.get("id") or not isinstance(entry.get("order"), int):
            raise ValidationError("Each update needs an id and an integer order")
    return updates

# module workshop_backend.catalog.views
def build_collection_router(spec: CollectionSpec) -> APIRouter:
    """Construit le router CRUD d'une collection selon sa CollectionSpec."""
    router = APIRouter(prefix=spec.prefix, tags=[f"{spec.label} API"])
    provider = PROVIDERS[spec.table]
    read_deps = [Depends(require_admin)] if spec.admin_read else []

    @router.get("", dependencies=read_deps)
    async def list_items(request: Request, repo: CollectionRepository = Depends(provider)):
        filters = {
            name: _query_value(request.query_params[name])
            for name in spec.filters
            if name in request.query_params
        }
        rows = await run_in_threadpool(repo.list, filters)
        needle = (request.query_params.get("search") or "").strip().lower()
        if needle and spec.search:
            rows = [row for row in rows if _matches(spec, row, needle)]
        return {"success": True, "count": len(rows), "data": rows}

    @router.post("/bulk/reorder", dependencies=[Depends(require_admin)])
    async def reorder_items(request: Request, repo: CollectionRepository = Depends(provider)):
        updates = _reorder_updates(spec, await _json(request))
        count = await run_in_threadpool(repo.reorder, updates)
        return {"success": True, "message": f"{count} items reordered successfully", "data": {"updated": count}}

    if spec.stats is not None:
        @router.get("/stats/all", dependencies=[Depends(require_admin)])
        async def collection_stats(repo: CollectionRepository = Depends(provider)):
            rows = await run_in_threadpool(repo.list)
            return {"success": True, "data": spec.stats(rows)}

    @router.get("/{item_id}", dependencies=read_deps)
    async def get_item(item_id: str, repo: CollectionRepository = Depends(provider)):
        item = await run_in_threadpool(repo.get, item_id)
        if not item:
            raise NotFoundError(f"{spec.label} not found")
        return {"success": True, "data": item}

    @router.post("", status_code=201, dependencies=[Depends(require_admin)])
    async def create_item(request: Request, repo: CollectionRepository = Depends(provider)):
        data = _clean_payload(await _json(request))
        _validate(spec, data, creating=True)
        await run_in_threadpool(_ensure_unique, spec, repo, data)
        data = {**spec.defaults(), **data}
        created = await run_in_threadpool(repo.create, data)
        if not created:
            raise StoreError(f"Failed to create {spec.label.lower()}")
        return {"success": True, "message": f"{spec.label} created successfully", "data": created}

    @router.put("/{item_id}", dependencies=[Depends(require_admin)])
    async def update_item(item_id: str, request: Request, repo: CollectionRepository = Depends(provider)):
        data = _clean_payload(await _json(request))
        if not data:
            raise ValidationError("No fields to update")
        _validate(spec, data, creating=False)
        await run_in_threadpool(_ensure_unique, spec, repo, data, item_id)
        updated = await run_in_threadpool(repo.update, item_id, data)
        if not updated:
            raise NotFoundError(f"{spec.label} not found")
        return {"success": True, "message": f"{spec.label} updated successfully", "data": updated}

    @router.delete("/{item_id}", dependencies=[Depends(require_roles("super_admin", "admin"))])
    async def delete_item(item_id: str, repo: CollectionRepository = Depends(provider)):
        if not await run_in_threadpool(repo.delete, item_id):
            raise NotFoundError(f"{spec.label} not found")
        return {"success": True, "message": f"{spec.label} deleted successfully"}

    for hook in spec.routes:
        hook(router, spec, provider)

    return router

def collection_routers() -> List[APIRouter]:
    return [build_collection_router(spec) for spec in COLLECTIONS]


settings_router = APIRouter(prefix="/api/settings", tags=["Settings API"])

@settings_router.get("")
async def get_settings(repo: CollectionRepository = Depends(get_settings_store)):
    """Réglages du site sous forme {clé: valeur}."""
    rows = await run_in_threadpool(repo.list)
    return {row.get("key"): row.get("value") for row in rows if row.get("key")}

@settings_router.get("/{key}")
async def get_setting(key: str, repo: CollectionRepository = Depends(get_settings_store)):
    row = await run_in_threadpool(repo.find_one, "key", key)
    if not row:
        raise NotFoundError("Setting not found")
    return {key: row.get("value")}

@settings_router.put("", dependencies=[Depends(require_admin)])
async def update_settings(request: Request, repo: CollectionRepository = Depends(get_settings_store)):
    body = await _json(request)
    if not isinstance(body, dict) or not body:
        raise ValidationError("Settings must be a non-empty object")
    rows = [{"key": str(k), "value": v} for k, v in body.items()]
    if not await run_in_threadpool(repo.upsert, rows, "key"):
        raise StoreError("Failed to update settings")
    return {"success": True, "message": "Settings updated successfully"}
