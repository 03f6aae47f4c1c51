import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import attachments, auth, dashboard, health, kpi, notifications, tickets, users
from .models.user import Base
from .db import engine, SessionLocal
from .core.config import settings as app_settings
from .core.errors import install_exception_handlers
from .core.seed import seed_admin
from .core.settings import settings
from .services.mail_service import start_mail_worker_thread
from .services.notifier import start_notifier_thread

from .models import attachment, mail_log, notification, ticket  # noqa: F401

logger = logging.getLogger(__name__)

app = FastAPI(title="Issue Tracker API")


@app.on_event("startup")
def on_startup():
    if settings.AUTO_DB_BOOTSTRAP:
        # Create tables in dev if missing; production schemas come from alembic.
        Base.metadata.create_all(bind=engine)
        with SessionLocal() as session:
            seed_admin(session)

    if settings.NOTIFIER_ENABLED:
        start_notifier_thread()
        start_mail_worker_thread()
    logger.info("Issue Tracker API started (environment=%s)", app_settings.environment)


app.include_router(health.router)
app.include_router(auth.router)
app.include_router(tickets.router)
app.include_router(attachments.router)
app.include_router(users.router)
app.include_router(dashboard.router)
app.include_router(kpi.router)
app.include_router(notifications.router)

install_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
