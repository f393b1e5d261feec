# shopcore/api/routers/health.py
from fastapi import APIRouter

from shopcore import __version__

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    return {"status": "ok", "version": __version__}
