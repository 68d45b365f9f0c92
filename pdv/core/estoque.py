# pdv/core/estoque.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable

from sqlalchemy import select, update

from pdv.core.models import Produto, _as_money

# Colunas Core da tabela Produtos, por nome de atributo
_produtos = Produto.__table__
_c = Produto.__mapper__.columns


@dataclass(frozen=True)
class ProdutoSnapshot:
    id: int
    nome: str
    preco: Decimal
    estoque: int


def ler_produtos(conn, produto_ids: Iterable[int], bloquear: bool = False) -> Dict[int, ProdutoSnapshot]:
    """
    Lê nome/preço/estoque atuais dentro da transação de quem chama.
    Ids inexistentes simplesmente não aparecem no resultado.

    Sem `bloquear` a leitura não trava linhas: quem garante o estoque é
    baixar_estoque(). Com `bloquear` usa SELECT ... FOR UPDATE em ordem
    crescente de Id, a mesma ordem para todas as vendas.
    """
    ids = sorted(set(produto_ids))
    if not ids:
        return {}
    stmt = (
        select(
            _c.id.label("id"),
            _c.nome.label("nome"),
            _c.preco.label("preco"),
            _c.estoque.label("estoque"),
        )
        .where(_c.id.in_(ids))
        .order_by(_c.id.asc())
    )
    if bloquear:
        stmt = stmt.with_for_update()
    out = {}
    for row in conn.execute(stmt):
        out[row.id] = ProdutoSnapshot(
            id=row.id,
            nome=row.nome,
            preco=_as_money(row.preco),
            estoque=int(row.estoque or 0),
        )
    return out


def baixar_estoque(conn, produto_id: int, quantidade: int) -> int:
    """
    Baixa condicional: só decrementa se ainda houver `quantidade` em estoque.
    A condição é avaliada pelo banco junto com o UPDATE.
    Retorna linhas afetadas (0 ou 1); 0 = produto sumiu ou estoque acabou.
    """
    stmt = (
        update(_produtos)
        .where(_c.id == produto_id, _c.estoque >= quantidade)
        .values({_c.estoque: _c.estoque - quantidade})
    )
    return conn.execute(stmt).rowcount
