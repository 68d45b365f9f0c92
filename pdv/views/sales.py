# pdv/views/sales.py
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from pdv.extensions import db, get_prober
from pdv.core.vendas import finalizar_venda

bp = Blueprint("sales", __name__)


@bp.post("")
def create():
    body = request.get_json(silent=True) or {}
    if not isinstance(body, dict):
        body = {}
    venda = finalizar_venda(
        db.engine,
        get_prober(),
        body.get("itens"),
        body.get("formaPagamento"),
        isolation_level=current_app.config["SALE_ISOLATION_LEVEL"],
        bloquear_linhas=current_app.config["SALE_LOCK_ROWS"],
    )
    return jsonify(venda.to_dict())
