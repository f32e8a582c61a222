# ======================================
# Transaction Provider
# ======================================

import logging
import threading
from contextlib import contextmanager

from sqlalchemy import event
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)


class TransactionProvider:
    """Hands out one session per unit of work.

    The session commits when the block exits normally and rolls back on any
    exception, which is re-raised. It is closed in both cases, returning its
    connection to the pool. Nested transactions on the same thread are refused.
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory
        self._local = threading.local()

    @classmethod
    def for_engine(cls, engine):
        return cls(sessionmaker(bind=engine, expire_on_commit=False))

    @contextmanager
    def transaction(self):
        if getattr(self._local, 'active', False):
            raise RuntimeError('nested transactions are not supported')

        self._local.active = True
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
            self._local.active = False

    def run(self, unit_of_work, *args, **kwargs):
        with self.transaction() as session:
            return unit_of_work(session, *args, **kwargs)


def configure_sqlite(engine, busy_timeout=5000):
    """Make SQLite behave like a locking database for check-then-write units.

    SQLite ignores FOR UPDATE, so every transaction starts with BEGIN IMMEDIATE
    instead: the write lock is taken before the first read and concurrent
    writers queue behind it for up to ``busy_timeout`` milliseconds.
    """
    if engine.dialect.name != 'sqlite':
        return

    @event.listens_for(engine, 'connect')
    def on_connect(dbapi_connection, connection_record):
        # pysqlite must not emit its own BEGIN
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys = ON')
        cursor.execute(f'PRAGMA busy_timeout = {int(busy_timeout)}')
        cursor.close()

    @event.listens_for(engine, 'begin')
    def on_begin(conn):
        conn.exec_driver_sql('BEGIN IMMEDIATE')

    logger.debug('SQLite engine configured with BEGIN IMMEDIATE transactions')
