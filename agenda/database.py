"""Database configuration and initialization."""
import logging
from dataclasses import dataclass

from sqlalchemy import BigInteger, Integer, create_engine, inspect
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

# Create SQLAlchemy base
Base = declarative_base()

# SQLite only autoincrements INTEGER primary keys
BigIntPK = BigInteger().with_variant(Integer, 'sqlite')

# Global session and engine
engine = None
db_session = None


@dataclass(frozen=True)
class SchemaCapabilities:
    """Optional columns present in the connected database.

    Older deployments were migrated column by column; the flags are resolved
    once at startup instead of probing the schema on every query.
    """
    space_gallery_images: bool = False
    appointment_preferred_staff: bool = False


def detect_schema_capabilities(bind) -> SchemaCapabilities:
    """Inspect the live schema for optional columns."""
    inspector = inspect(bind)
    tables = set(inspector.get_table_names())

    def has_column(table: str, column: str) -> bool:
        if table not in tables:
            return False
        return any(col['name'] == column for col in inspector.get_columns(table))

    capabilities = SchemaCapabilities(
        space_gallery_images=has_column('company_space', 'gallery_images'),
        appointment_preferred_staff=has_column('company_appointment', 'preferred_staff_ids'),
    )
    logger.info(f"[DB] Schema capabilities: {capabilities}")
    return capabilities


def _engine_options(app, database_uri: str) -> dict:
    options = {'echo': app.config.get('SQLALCHEMY_ECHO', False)}
    if database_uri.startswith('sqlite'):
        # In-memory SQLite must share one connection across the session registry
        options['poolclass'] = StaticPool
        options['connect_args'] = {'check_same_thread': False}
    else:
        options.update(
            pool_pre_ping=True,  # Enable connection health checks
            pool_size=10,
            max_overflow=20
        )
    return options


def init_db(app):
    """Initialize database connection."""
    global engine, db_session

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    engine = create_engine(database_uri, **_engine_options(app, database_uri))

    db_session = scoped_session(
        sessionmaker(autocommit=False, autoflush=False, bind=engine)
    )

    Base.query = db_session.query_property()

    if app.config.get('CREATE_SCHEMA_ON_START'):
        create_schema()

    app.extensions['schema'] = detect_schema_capabilities(engine)

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def create_schema():
    """Create all tables for the registered models."""
    import agenda.models  # noqa: F401  (register mappers)
    Base.metadata.create_all(bind=engine)


def get_session():
    """Get database session."""
    return db_session


def get_schema_capabilities() -> SchemaCapabilities:
    """Capabilities resolved for the current app (all off outside an app)."""
    from flask import current_app, has_app_context
    if has_app_context():
        return current_app.extensions.get('schema', SchemaCapabilities())
    return SchemaCapabilities()
