"""Database configuration and initialization."""
from flask import current_app
from sqlalchemy import create_engine, event
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# Create SQLAlchemy base
Base = declarative_base()


def build_engine(database_uri: str, echo: bool = False, statement_timeout_ms: int = 0):
    """Create an engine suited to the configured backend."""
    if database_uri.startswith('sqlite'):
        # In-memory SQLite must share one connection across threads
        engine = create_engine(
            database_uri,
            echo=echo,
            connect_args={'check_same_thread': False},
            poolclass=StaticPool
        )

        @event.listens_for(engine, 'connect')
        def enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute('PRAGMA foreign_keys=ON')
            cursor.close()

        return engine

    connect_args = {}
    if statement_timeout_ms:
        connect_args['options'] = f'-c statement_timeout={statement_timeout_ms}'

    return create_engine(
        database_uri,
        echo=echo,
        pool_pre_ping=True,  # Enable connection health checks
        pool_size=10,
        max_overflow=20,
        connect_args=connect_args
    )


def init_db(app):
    """Initialize database connection and bind a request-scoped session to the app."""
    engine = build_engine(
        app.config['SQLALCHEMY_DATABASE_URI'],
        echo=app.config.get('SQLALCHEMY_ECHO', False),
        statement_timeout_ms=app.config.get('DB_STATEMENT_TIMEOUT_MS', 0)
    )

    db_session = scoped_session(
        sessionmaker(autocommit=False, autoflush=False, bind=engine)
    )

    app.extensions['db_engine'] = engine
    app.extensions['db_session'] = db_session

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()

    return db_session


def create_tables(app):
    """Create every mapped table on the app's engine."""
    from app import models  # noqa: F401  (registers mappers)
    Base.metadata.create_all(app.extensions['db_engine'])


def get_session():
    """Get database session for the current application."""
    return current_app.extensions['db_session']
