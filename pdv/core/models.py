# pdv/core/models.py
from __future__ import annotations

import enum
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict

from sqlalchemy import (
    CheckConstraint, Column, Integer, String, DateTime, Boolean, ForeignKey,
    Numeric, func
)
from sqlalchemy.orm import validates

from pdv.extensions import db  # type: ignore


# =============================================================================
# Utilidades
# =============================================================================

MONEY = Numeric(10, 2)   # mesmo tipo do banco legado

def _as_money(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    if isinstance(value, Decimal):
        return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


# =============================================================================
# Enums
# =============================================================================

class FormaPagamento(str, enum.Enum):
    PIX = "PIX"
    CARTAO = "CARTAO"
    DINHEIRO = "DINHEIRO"

    @classmethod
    def valores(cls):
        return [f.value for f in cls]


# =============================================================================
# Tabelas do banco legado
# =============================================================================
# Os nomes de tabela e coluna seguem o banco existente. Pedidos pode não ter
# todas as colunas abaixo; a venda descobre as presentes em tempo de execução
# (ver pdv.core.schema). Os modelos servem ao CRUD e ao banco local de dev.

class Produto(db.Model):
    __tablename__ = "Produtos"

    id = Column("Id", Integer, primary_key=True)
    nome = Column("Nome", String(100), nullable=False, index=True)
    preco = Column("Preco", MONEY, nullable=False, default=Decimal("0.00"))
    estoque = Column("Estoque", Integer, nullable=False, default=0)
    ativo = Column("Ativo", Boolean, nullable=True, default=True)

    __table_args__ = (
        CheckConstraint("Preco >= 0", name="ck_produtos_preco_nao_negativo"),
        CheckConstraint("Estoque >= 0", name="ck_produtos_estoque_nao_negativo"),
    )

    @validates("preco")
    def _val_money(self, key, value):
        v = _as_money(value)
        if v < 0:
            raise ValueError("Preço negativo")
        return v

    @validates("estoque")
    def _val_estoque(self, key, value):
        if value is None or int(value) < 0:
            raise ValueError("Estoque negativo")
        return int(value)

    @property
    def esta_ativo(self) -> bool:
        # NULL no legado = ativo
        return True if self.ativo is None else bool(self.ativo)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "nome": self.nome,
            "preco": str(_as_money(self.preco)),
            "estoque": self.estoque,
            "ativo": self.esta_ativo,
        }

    def __repr__(self):
        return f"<Produto {self.id} {self.nome} estoque={self.estoque}>"


class Pedido(db.Model):
    __tablename__ = "Pedidos"

    id = Column("Id", Integer, primary_key=True)
    data_hora = Column("DataHora", DateTime, nullable=False, server_default=func.now())
    total = Column("Total", MONEY, nullable=False, default=Decimal("0.00"))
    forma_pagamento = Column("FormaPagamento", String(20), nullable=True)

    __table_args__ = (
        CheckConstraint("Total >= 0", name="ck_pedidos_total"),
    )

    def __repr__(self):
        return f"<Pedido {self.id} total={self.total} {self.forma_pagamento}>"


class PedidoItem(db.Model):
    __tablename__ = "PedidoItens"

    id = Column("Id", Integer, primary_key=True)
    pedido_id = Column("PedidoId", Integer, ForeignKey("Pedidos.Id"), nullable=False, index=True)
    produto_id = Column("ProdutoId", Integer, ForeignKey("Produtos.Id"), nullable=False, index=True)
    quantidade = Column("Quantidade", Integer, nullable=False)
    preco_unitario = Column("PrecoUnitario", MONEY, nullable=False)

    __table_args__ = (
        CheckConstraint("Quantidade > 0", name="ck_pedido_itens_qtd"),
        CheckConstraint("PrecoUnitario >= 0", name="ck_pedido_itens_preco"),
    )

    def __repr__(self):
        return f"<PedidoItem pedido={self.pedido_id} produto={self.produto_id} qtd={self.quantidade}>"
