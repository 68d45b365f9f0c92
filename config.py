# config.py
import os

from dotenv import load_dotenv

load_dotenv()


def _bool_env(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _engine_options(uri: str, timeout: int, pool_timeout: int) -> dict:
    opts = {"pool_pre_ping": True}
    if uri.startswith("sqlite"):
        # timeout do sqlite3 = espera por lock
        opts["connect_args"] = {"timeout": timeout}
    else:
        opts["pool_timeout"] = pool_timeout
        if uri.startswith("mssql"):
            # timeout de login; o de consulta é ligado no evento "connect" (extensions)
            opts["connect_args"] = {"timeout": timeout}
        elif uri.startswith("postgresql"):
            opts["connect_args"] = {"options": f"-c statement_timeout={timeout * 1000}"}
    return opts


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///pdv.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DB_TIMEOUT = int(os.getenv("DB_TIMEOUT", "30"))
    DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options(SQLALCHEMY_DATABASE_URI, DB_TIMEOUT, DB_POOL_TIMEOUT)

    # Venda
    SALE_ISOLATION_LEVEL = os.getenv("SALE_ISOLATION_LEVEL", "READ COMMITTED")
    SALE_LOCK_ROWS = _bool_env("SALE_LOCK_ROWS")
    SCHEMA_CACHE_TTL = int(os.getenv("SCHEMA_CACHE_TTL", "300"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options("sqlite", 5, 5)
    # SQLite não tem READ COMMITTED
    SALE_ISOLATION_LEVEL = "SERIALIZABLE"
    SCHEMA_CACHE_TTL = 0
    LOG_LEVEL = "DEBUG"
