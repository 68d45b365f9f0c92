# pdv/views/reports.py
from __future__ import annotations

from datetime import date
from typing import Optional

from flask import Blueprint, jsonify, request

from pdv.extensions import get_prober
from pdv.core.services import ValidacaoError, _ensure, transaction, relatorio_vendas

bp = Blueprint("reports", __name__)


def _data_arg(nome: str) -> Optional[date]:
    valor = (request.args.get(nome) or "").strip()
    if not valor:
        return None
    try:
        return date.fromisoformat(valor)
    except ValueError:
        raise ValidacaoError(f"Data inválida em '{nome}' (use YYYY-MM-DD)") from None


@bp.get("")
def sales_report():
    ini, fim = _data_arg("from"), _data_arg("to")
    if ini and fim:
        _ensure(ini <= fim, "'from' deve ser anterior ou igual a 'to'")
    with transaction():
        dados = relatorio_vendas(get_prober(), ini, fim)
    return jsonify(dados)
