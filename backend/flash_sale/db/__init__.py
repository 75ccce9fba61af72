import importlib

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from flash_sale.config import settings
from flash_sale.utils.logs import get_logger

log = get_logger("db")

DATABASE_URL = settings.DATABASE_URL

connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    # sessions are handed between request threads and scheduler threads
    connect_args = {"check_same_thread": False, "timeout": 30}

engine = create_engine(DATABASE_URL, future=True, echo=False, connect_args=connect_args)
# Engine operations hand their objects back after commit; keep attributes loaded.
SessionLocal = sessionmaker(
    autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
)
Base = declarative_base()

MODEL_MODULES = [
    "flash_sale.models.item",
    "flash_sale.models.reservation",
]


def import_models():
    for mod in MODEL_MODULES:
        importlib.import_module(mod)


def init_db(reset: bool = False, seed: bool = True):
    """
    Initialize DB schema.

    Behavior:
      - reset=True drops and recreates every table (RESET_DB in the environment
        does the same at application startup).
      - seed=True loads the demo catalog when the items table is empty. An
        existing catalog is never touched.
    """
    import_models()

    if reset:
        log.warning("Resetting database: dropping all tables")
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
    log.info("Database initialized (%s)", engine.url.render_as_string(hide_password=True))

    if seed:
        from flash_sale.services.admin_service import seed_if_empty

        created = seed_if_empty(SessionLocal)
        if created:
            log.info("Seeded %d catalog items", created)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
