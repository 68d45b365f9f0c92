# pdv/extensions.py
from __future__ import annotations

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_cors import CORS
from sqlalchemy import event

db = SQLAlchemy()
migrate = Migrate()


def _on_sqlite_connect(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
    # busca sem acento/caixa (ver services.buscar_produtos)
    from pdv.core.services import dobrar_texto

    dbapi_connection.create_function("pdv_dobrar", 1, dobrar_texto, deterministic=True)


def query_timeout_listener(segundos: int):
    """
    pyodbc: connect_args={"timeout"} só limita o login.
    Connection.timeout limita cada consulta (0 = sem limite).
    """
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.timeout = segundos
    return _on_connect


def init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    CORS(app, resources={r"/api/*": {"origins": app.config.get("CORS_ORIGINS", "*")}})

    uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    with app.app_context():
        if uri.startswith("sqlite"):
            event.listen(db.engine, "connect", _on_sqlite_connect)
        elif uri.startswith("mssql"):
            event.listen(db.engine, "connect", query_timeout_listener(app.config.get("DB_TIMEOUT", 30)))

    # Prober compartilhado pelas rotas de venda e relatório
    from pdv.core.schema import SchemaProber

    app.extensions["pdv.schema"] = SchemaProber(ttl=app.config.get("SCHEMA_CACHE_TTL", 300))


def get_prober():
    from flask import current_app

    return current_app.extensions["pdv.schema"]
