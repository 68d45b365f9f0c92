# pdv/__init__.py
from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import Flask, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from .extensions import init_extensions, db
from .core.services import ServiceError, classificar_erro_banco


def create_app(config_object: str = "config.Config", test_config: dict | None = None):
    app = Flask(__name__)

    # Config básica
    app.config.from_object(config_object)
    if test_config:
        app.config.update(test_config)
    app.json.sort_keys = False

    app.logger.setLevel(getattr(logging, app.config.get("LOG_LEVEL", "INFO"), logging.INFO))

    init_extensions(app)

    # Blueprints
    from .views.products import bp as products_bp
    from .views.sales import bp as sales_bp
    from .views.reports import bp as reports_bp

    app.register_blueprint(products_bp, url_prefix="/api/products")
    app.register_blueprint(sales_bp, url_prefix="/api/sales")
    app.register_blueprint(reports_bp, url_prefix="/api/reports")

    # Healthcheck: ping no banco
    @app.get("/api/health")
    def health():
        url = db.engine.url
        alvo = {"dialect": url.get_backend_name(), "host": url.host, "database": url.database}
        try:
            with db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
                versao = conn.dialect.server_version_info
        except SQLAlchemyError as e:
            app.logger.error("Healthcheck falhou: %s", e)
            return jsonify(ok=False, target=alvo, error=classificar_erro_banco(e)), 500
        return jsonify(
            ok=True,
            target=alvo,
            database=url.database,
            dialect=db.engine.dialect.name,
            serverVersion=".".join(str(v) for v in versao) if versao else None,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    # Erros
    @app.errorhandler(ServiceError)
    def service_error(e: ServiceError):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def http_error(e: HTTPException):
        return jsonify(error=e.description, tipo=e.name), e.code

    @app.errorhandler(500)
    def server_error(e):
        return jsonify(error="Erro interno do servidor", tipo="erro_interno"), 500

    # Schema local (dev/testes); em produção as tabelas já existem
    with app.app_context():
        db.create_all()

    return app
