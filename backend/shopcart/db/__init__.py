import importlib

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from shopcart.config import settings
from shopcart.utils.logs import get_logger

log = get_logger("db")

DATABASE_URL = settings.DATABASE_URL
_is_sqlite = DATABASE_URL.startswith("sqlite")

engine = create_engine(
    DATABASE_URL,
    future=True,
    echo=False,
    connect_args=(
        {"check_same_thread": False, "timeout": settings.SQLITE_BUSY_TIMEOUT_SECONDS}
        if _is_sqlite
        else {}
    ),
)

if _is_sqlite:
    # pysqlite's own transaction handling breaks SAVEPOINT; hand BEGIN over to
    # SQLAlchemy and turn on FK enforcement so cascades behave like Postgres.
    # BEGIN IMMEDIATE takes the write lock up front so concurrent writers
    # queue on the busy timeout; a deferred BEGIN fails its read-to-write
    # upgrade with "database is locked".
    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cur = dbapi_connection.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

MODEL_MODULES = [
    "shopcart.models.product",
    "shopcart.models.cart",
    "shopcart.models.cart_item",
    "shopcart.models.coupon",
    "shopcart.models.coupon_usage",
    "shopcart.models.order",
]


def init_db(reset: bool = False):
    """
    Initialize DB schema.

    All model modules are imported first so Base.metadata knows every table.
    With reset=True (or RESET_DB set in the environment) existing tables are
    dropped and recreated, which is what the test-suite relies on.
    """
    for mod in MODEL_MODULES:
        importlib.import_module(mod)

    if reset or settings.RESET_DB:
        log.info("Resetting database tables")
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
    log.debug("init_db: tables=%s", sorted(Base.metadata.tables.keys()))


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
