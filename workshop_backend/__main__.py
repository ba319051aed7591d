"""
Lancement direct: `python -m workshop_backend`.

Variables lues: HOST (défaut 0.0.0.0), PORT (défaut 8000),
UVICORN_RELOAD ("1"/"true"/"yes") et LOG_LEVEL (défaut "info").
"""
import os

import uvicorn


def _truthy(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes")


def main() -> None:
    uvicorn.run(
        "workshop_backend.asgi:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
        reload=_truthy(os.environ.get("UVICORN_RELOAD", "")),
        log_level=os.environ.get("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
