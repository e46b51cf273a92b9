"""
Database Schema Setup for Rifa System
Creates the tables and indices used by raffles and sold tickets
"""

from sqlalchemy import create_engine, event, inspect, text
import logging

from .config import DATABASE_URL

logger = logging.getLogger(__name__)

# SQL schema for rifa system (SQLite and PostgreSQL compatible)
RIFA_SCHEMA_SQL = """
-- ============================================
-- RIFA SYSTEM DATABASE SCHEMA
-- ============================================

-- One row per raffle. Timestamps are stored in the canonical
-- UTC text form (YYYY-MM-DDTHH:MM:SS.mmmZ) so they compare lexically.
CREATE TABLE IF NOT EXISTS rifas (
    id VARCHAR(36) PRIMARY KEY,
    caixinha_id VARCHAR(128) NOT NULL,
    nome TEXT NOT NULL,
    descricao TEXT,
    valor_bilhete NUMERIC(12, 2) NOT NULL,
    quantidade_bilhetes INTEGER NOT NULL,
    data_inicio TEXT,
    data_fim TEXT,
    status VARCHAR(20) NOT NULL DEFAULT 'ABERTA',
    premio TEXT,
    sorteio_data TEXT,
    sorteio_metodo VARCHAR(20),
    sorteio_referencia TEXT,
    sorteio_resultado TEXT,  -- JSON, non-null iff FINALIZADA
    comprovante TEXT,
    motivo_cancelamento TEXT,
    versao INTEGER NOT NULL DEFAULT 0,  -- bumped by every write
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    CHECK (quantidade_bilhetes >= 1),
    CHECK (valor_bilhete > 0),
    CHECK (status IN ('ABERTA', 'FINALIZADA', 'CANCELADA')),
    CHECK ((status = 'FINALIZADA') = (sorteio_resultado IS NOT NULL))
);

-- Sold tickets: one create-if-absent row per (raffle, number)
CREATE TABLE IF NOT EXISTS rifa_bilhetes (
    rifa_id VARCHAR(36) NOT NULL REFERENCES rifas(id) ON DELETE CASCADE,
    numero INTEGER NOT NULL,
    membro_id VARCHAR(128) NOT NULL,
    data_compra TEXT NOT NULL,
    ordem INTEGER NOT NULL,  -- sale sequence within the raffle
    PRIMARY KEY (rifa_id, numero),
    CHECK (numero >= 1)
);

-- ============================================
-- INDICES FOR PERFORMANCE
-- ============================================

CREATE INDEX IF NOT EXISTS idx_rifas_caixinha ON rifas(caixinha_id);
CREATE INDEX IF NOT EXISTS idx_rifas_status ON rifas(status);
CREATE INDEX IF NOT EXISTS idx_rifa_bilhetes_membro ON rifa_bilhetes(rifa_id, membro_id);
"""

REQUIRED_TABLES = ['rifas', 'rifa_bilhetes']

# Execution option marking a connection whose transactions only read
READ_ONLY_OPTION = 'rifa_read_only'


def create_rifa_engine(database_url=None, **kwargs):
    """
    Create the SQLAlchemy engine used by the rifa system

    PostgreSQL URLs in the legacy postgres:// form are normalized.
    SQLite connections start every transaction with BEGIN IMMEDIATE so that
    concurrent writers queue on the database lock instead of failing a
    read-to-write lock upgrade. Connections carrying the READ_ONLY_OPTION
    execution option use a plain deferred BEGIN and read alongside writers.

    Args:
        database_url: Connection URL (defaults to DATABASE_URL)
        **kwargs: Extra create_engine() arguments

    Returns:
        Engine
    """
    url = database_url or DATABASE_URL

    # Convert postgres:// to postgresql:// for SQLAlchemy
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)

    if not url.startswith("sqlite"):
        kwargs.setdefault("pool_pre_ping", True)
        return create_engine(url, **kwargs)

    connect_args = kwargs.pop("connect_args", {})
    connect_args.setdefault("check_same_thread", False)
    connect_args.setdefault("timeout", 30)
    engine = create_engine(url, connect_args=connect_args, **kwargs)

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys = ON")

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        # Read-only transactions stay deferred so they never wait on writers
        if conn.get_execution_options().get(READ_ONLY_OPTION):
            conn.exec_driver_sql("BEGIN")
        else:
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def setup_rifa_database(engine):
    """
    Create all rifa system tables and indices

    Args:
        engine: SQLAlchemy engine instance

    Returns:
        bool: True if successful, False otherwise
    """
    try:
        logger.info("Setting up rifa system database schema...")

        with engine.begin() as conn:
            # SQLite can only execute one statement at a time
            statements = []
            current_statement = []

            for line in RIFA_SCHEMA_SQL.split('\n'):
                stripped = line.strip()
                if not stripped or stripped.startswith('--'):
                    continue

                current_statement.append(line)

                if stripped.endswith(';'):
                    statements.append('\n'.join(current_statement))
                    current_statement = []

            for statement in statements:
                conn.execute(text(statement))

        logger.info("✅ Rifa database schema created successfully")
        return True

    except Exception as e:
        logger.error(f"❌ Failed to setup rifa database: {e}")
        return False


def verify_rifa_schema(engine):
    """
    Verify that all required tables exist

    Args:
        engine: SQLAlchemy engine instance

    Returns:
        dict: Status of each table (True/False)
    """
    status = {table: False for table in REQUIRED_TABLES}

    try:
        existing = set(inspect(engine).get_table_names())
        for table in REQUIRED_TABLES:
            status[table] = table in existing
    except Exception as e:
        logger.error(f"Failed to verify schema: {e}")

    return status
