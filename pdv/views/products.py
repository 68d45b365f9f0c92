# pdv/views/products.py
from __future__ import annotations

from flask import Blueprint, jsonify, request

from pdv.core.forms import ProductCreateForm, ProductUpdateForm, StockAddForm
from pdv.core.services import (
    ValidacaoError, transaction, buscar_produtos, criar_produto,
    atualizar_produto, repor_estoque,
)

bp = Blueprint("products", __name__)


# ----------------------------
# Helpers
# ----------------------------
def _validar(form):
    if not form.validate():
        raise ValidacaoError(form.first_error() or "Dados inválidos")
    return form


# ----------------------------
# Listagem / busca
# ----------------------------
@bp.get("")
def list_():
    query = request.args.get("query", "")
    limit = request.args.get("limit", type=int)
    items = buscar_produtos(query, limit)
    return jsonify(products=[p.to_dict() for p in items])


# ----------------------------
# Criar
# ----------------------------
@bp.post("")
def create():
    form = _validar(ProductCreateForm())
    with transaction():
        p = criar_produto(form.nome.data, form.preco.data, form.estoque.data)
    return jsonify(p.to_dict()), 201


# ----------------------------
# Editar
# ----------------------------
@bp.patch("/<int:pid>")
def update(pid: int):
    form = _validar(ProductUpdateForm())
    with transaction():
        p = atualizar_produto(pid, form.alteracoes())
    return jsonify(p.to_dict())


@bp.patch("/<int:pid>/stock")
def add_stock(pid: int):
    form = _validar(StockAddForm())
    with transaction():
        p = repor_estoque(pid, form.quantidade.data)
    return jsonify(p.to_dict())
