import os
import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from gymflow.config import env_bool, env_int

# Configuración de logs
logger = logging.getLogger(__name__)

# --- SQLAlchemy Configuration ---


def get_database_url() -> str:
    """Construye la URL de conexión a partir de variables de entorno."""
    url = os.getenv("DATABASE_URL")
    if url:
        # Asegurar driver correcto para PostgreSQL si no se especifica
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql+psycopg2://", 1)
        elif url.startswith("postgresql://") and "+" not in url.split("://")[0]:
            url = url.replace("postgresql://", "postgresql+psycopg2://", 1)
        return url

    user = os.getenv("DB_USER", "postgres")
    password = os.getenv("DB_PASSWORD", "")
    host = os.getenv("DB_HOST", "localhost")
    port = os.getenv("DB_PORT", "5432")
    db_name = os.getenv("DB_NAME", "gymflow")
    sslmode = os.getenv("DB_SSLMODE", "")

    auth = f"{user}:{password}" if password else user
    base_url = f"postgresql+psycopg2://{auth}@{host}:{port}/{db_name}"
    if sslmode:
        base_url += f"?sslmode={sslmode}"
    return base_url


def build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    is_serverless = bool(
        os.getenv("VERCEL") or os.getenv("AWS_LAMBDA_FUNCTION_NAME") or os.getenv("K_SERVICE")
    )
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=env_int("DB_POOL_SIZE", 1 if is_serverless else 10),
        max_overflow=env_int("DB_MAX_OVERFLOW", 0 if is_serverless else 20),
        pool_recycle=1800,  # Reciclar conexiones cada 30 mins
        echo=env_bool("DB_ECHO", False),
    )


DATABASE_URL = get_database_url()

engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def describe_database_url(url: str) -> str:
    """URL without credentials, for the startup log."""
    try:
        scheme, rest = url.split("://", 1)
        if "@" in rest:
            rest = rest.split("@", 1)[1]
        return f"{scheme}://{rest}"
    except Exception:
        return "(unparseable)"
