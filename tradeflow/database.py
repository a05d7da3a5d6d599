"""Database configuration and initialization."""
from sqlalchemy import create_engine, event, BigInteger, Integer
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base

# Create SQLAlchemy base
Base = declarative_base()

# SQLite only autoincrements INTEGER primary keys
IdType = BigInteger().with_variant(Integer, 'sqlite')

# Global session and engine
engine = None
db_session = None


def _engine_options(app):
    """Build create_engine kwargs for the configured backend."""
    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    options = {
        'echo': app.config.get('SQLALCHEMY_ECHO', False),
        'pool_pre_ping': True,  # Enable connection health checks
    }
    if database_uri.startswith('sqlite'):
        options['connect_args'] = {'check_same_thread': False, 'timeout': 30}
        return options

    options['pool_size'] = 10
    options['max_overflow'] = 20
    if database_uri.startswith('postgresql'):
        lock_timeout = app.config.get('DB_LOCK_TIMEOUT_MS', 5000)
        statement_timeout = app.config.get('DB_STATEMENT_TIMEOUT_MS', 30000)
        options['connect_args'] = {
            'options': f'-c lock_timeout={lock_timeout} -c statement_timeout={statement_timeout}'
        }
    return options


def _configure_sqlite(sqlite_engine):
    """
    Hand transaction control to SQLAlchemy so SAVEPOINT works, and take the
    write lock at BEGIN so concurrent writers queue instead of deadlocking.
    """

    @event.listens_for(sqlite_engine, 'connect')
    def on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()

    @event.listens_for(sqlite_engine, 'begin')
    def on_begin(conn):
        conn.exec_driver_sql('BEGIN IMMEDIATE')


def init_db(app):
    """Initialize database connection."""
    global engine, db_session

    if db_session is not None:
        db_session.remove()
    if engine is not None:
        engine.dispose()

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    engine = create_engine(database_uri, **_engine_options(app))
    if engine.dialect.name == 'sqlite':
        _configure_sqlite(engine)

    db_session = scoped_session(
        sessionmaker(autocommit=False, autoflush=False, bind=engine)
    )

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def create_schema():
    """Create all tables registered on Base."""
    import tradeflow.models  # noqa: F401  (registers mappers)
    Base.metadata.create_all(bind=engine)


def get_session():
    """
    Get the database session for the current thread.

    scoped_session hands every thread its own Session, so worker threads
    calling this get an independent unit of work and must call
    ``remove_session()`` when done.
    """
    return db_session()


def remove_session():
    """Dispose of the current thread's session."""
    if db_session is not None:
        db_session.remove()
