from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cafe_pos.app.api.v1.api import api_router
from cafe_pos.app.core.config import settings

app = FastAPI(title="Café POS register")

# ─── CORS: restrict to configured origins ────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Accept"],
)

app.include_router(api_router)
