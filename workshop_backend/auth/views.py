from typing import Any, Dict
from fastapi import APIRouter, Depends
from workshop_backend.utils.security import require_user

router = APIRouter(prefix="/api/auth", tags=["Auth API"])

@router.get("/me")
def me(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    """Profil de l'utilisateur courant (sans le token)."""
    return {
        "success": True,
        "data": {
            "id": user.get("id"),
            "email": user.get("email"),
            "role": user.get("role"),
            "fullName": (user.get("metadata") or {}).get("full_name"),
        },
    }
