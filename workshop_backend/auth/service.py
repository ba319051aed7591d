from typing import Dict, Any
from workshop_backend.config import ADMIN_ROLES
from .repository import get_user_from_access_token as _repo_get_user_from_token

KNOWN_ROLES = ADMIN_ROLES + ("student",)

def determine_role(metadata: Dict[str, Any] | None) -> str:
    """Rôle applicatif lu dans user_metadata.role; 'student' par défaut."""
    role_lower = str((metadata or {}).get("role", "")).lower()
    if role_lower in KNOWN_ROLES:
        return role_lower
    return "student"

def get_user_from_token(access_token: str) -> Dict[str, Any]:
    """Normalise user issu de supabase.auth.get_user(access_token):
    - Retourne {id, email, metadata, role, token}
    """
    raw = _repo_get_user_from_token(access_token)
    metadata = raw.get("user_metadata") or {}
    return {
        "id": raw.get("id"),
        "email": raw.get("email"),
        "metadata": metadata,
        "role": determine_role(metadata),
        "token": access_token,
    }
