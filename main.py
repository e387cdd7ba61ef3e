import logging
import os
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pymongo.database import Database

import database
from config import Settings
from database import Store
from errors import register_error_handlers
from notifications import Mailer, Notifier
from principals import utcnow
from routes_auth import router as auth_router
from routes_vendor import router as vendor_router
from security import Hasher, TokenAuthority

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, db: Optional[Database] = None,
               mailer: Optional[Mailer] = None, clock: Callable = utcnow) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    app = FastAPI(title="BreadBox Marketplace API", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if db is None:
        db = database.connect(settings)
    store = None
    if db is not None:
        store = Store(db, use_transactions=settings.mongo_transactions)
        store.ensure_indexes(full_text_search=settings.full_text_search)

    app.state.settings = settings
    app.state.store = store
    app.state.hasher = Hasher(settings.bcrypt_rounds)
    app.state.tokens = TokenAuthority.from_settings(settings)
    app.state.notifier = Notifier(mailer or Mailer.from_settings(settings))
    app.state.clock = clock

    register_error_handlers(app)
    app.include_router(auth_router)
    app.include_router(vendor_router)

    # ===================== Public Endpoints =====================
    @app.get("/")
    def root():
        return {"message": "BreadBox Backend"}

    @app.get("/test")
    def test_database(request: Request):
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_url": "✅ Set" if settings.database_url else "❌ Not Set",
            "database_name": settings.database_name or "❌ Not Set",
            "connection_status": "Not Connected",
            "collections": [],
        }
        store = request.app.state.store
        if store is None:
            return response
        try:
            response["collections"] = store.db.list_collection_names()
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
        except Exception as e:
            logger.exception("Database health check failed")
            response["database"] = f"⚠️ Connected but Error: {type(e).__name__}"
        return response

    return app


if __name__ == "__main__":
    import uvicorn
    app = create_app()
    port = int(os.getenv("PORT", app.state.settings.port))
    uvicorn.run(app, host="0.0.0.0", port=port)
