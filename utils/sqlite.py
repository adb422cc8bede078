from sqlalchemy import event

# execution option set by services.transactions.atomic() on write units
IMMEDIATE_OPTION = "sqlite_immediate"


def configure_sqlite_engine(engine):
    """
    SQLite ignores SELECT ... FOR UPDATE, so write units are serialized by
    opening them with BEGIN IMMEDIATE (the pysqlite recipe from the
    SQLAlchemy docs). Plain reads open a deferred BEGIN and, with the WAL
    journal, never hold up a writer. Only applied to sqlite engines.
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _):
        # let SQLAlchemy emit BEGIN itself
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        if conn.get_execution_options().get(IMMEDIATE_OPTION):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")
