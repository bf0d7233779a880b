import os

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

DATABASE_URL = os.getenv("ZONECAST_DATABASE_URL", "sqlite:///./zonecast.db")

DEFAULT_ZONES = [
    ("all", "Alle zones", "Toon op alle schermen", 0),
    ("reception", "Receptie", "Hoofdingang en receptie", 1),
    ("restaurant", "Restaurant", "Eetgelegenheid", 2),
    ("skislope", "Skibaan", "Hoofdskibaan", 3),
    ("lockers", "Kluisjes", "Kleedkamers en kluisjes", 4),
    ("shop", "Winkel", "Ski-uitrusting winkel", 5),
]

Base = declarative_base()


def make_engine(url: str = DATABASE_URL) -> Engine:
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)
    if url in {"sqlite://", "sqlite:///:memory:"}:
        # One shared connection, otherwise every session sees an empty database.
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(url, connect_args={"check_same_thread": False})


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, autocommit=False, autoflush=False, expire_on_commit=False)


engine = make_engine()


def ensure_sqlite_schema(bind: Engine | None = None) -> None:
    """
    Create tables and seed reference data.

    `Base.metadata.create_all()` won't add new columns to existing tables, so
    columns introduced after the first release are patched in for SQLite.
    """
    # Register every model on Base.metadata before create_all.
    from zonecast.models import activity_log, content, schedule, zone  # noqa: F401

    target = bind or engine
    Base.metadata.create_all(bind=target)

    with target.begin() as conn:
        if target.url.get_backend_name() == "sqlite":
            content_cols = conn.execute(text("PRAGMA table_info(content)")).fetchall()
            content_col_names = {row[1] for row in content_cols}  # (cid, name, type, notnull, dflt_value, pk)
            if "updated_at" not in content_col_names:
                conn.execute(text("ALTER TABLE content ADD COLUMN updated_at DATETIME"))

            schedule_cols = conn.execute(text("PRAGMA table_info(schedule)")).fetchall()
            schedule_col_names = {row[1] for row in schedule_cols}
            if "active" not in schedule_col_names:
                conn.execute(text("ALTER TABLE schedule ADD COLUMN active BOOLEAN DEFAULT 1"))
            conn.execute(text("UPDATE schedule SET active=1 WHERE active IS NULL"))

        existing = {row[0] for row in conn.execute(text("SELECT id FROM zone")).fetchall()}
        for zone_id, display_name, description, display_order in DEFAULT_ZONES:
            if zone_id in existing:
                continue
            conn.execute(
                text(
                    "INSERT INTO zone (id, display_name, description, display_order, active) "
                    "VALUES (:id, :display_name, :description, :display_order, :active)"
                ),
                {
                    "id": zone_id,
                    "display_name": display_name,
                    "description": description,
                    "display_order": display_order,
                    "active": True,
                },
            )
