# pdv/core/vendas.py
"""
Finalização de venda.

Uma venda é uma única transação: lê produtos, confere estoque, grava
Pedidos + PedidoItens e baixa o estoque de cada item. Ou tudo é gravado,
ou nada é. A conferência de estoque feita na leitura serve só para dar uma
mensagem clara; quem impede estoque negativo é a baixa condicional em
pdv.core.estoque.baixar_estoque().
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Sequence, Tuple, Union

from sqlalchemy import func, insert
from sqlalchemy.exc import SQLAlchemyError, TimeoutError as PoolTimeoutError

from pdv.core.estoque import baixar_estoque, ler_produtos
from pdv.core.models import FormaPagamento, _as_money
from pdv.core.schema import PedidosSchema, SchemaProber, tabela_itens, tabela_pedidos
from pdv.core.services import (
    BancoIndisponivel, EstoqueInsuficiente, FalhaTransacao, ProdutoNaoEncontrado,
    ServiceError, ValidacaoError, _ensure,
)

logger = logging.getLogger(__name__)

ISOLAMENTO_PADRAO = "READ COMMITTED"


# =============================================================================
# DTOs
# =============================================================================

@dataclass(frozen=True)
class ItemVenda:
    produto_id: int
    quantidade: int

@dataclass
class LinhaVenda:
    produto_id: int
    nome: str
    quantidade: int
    preco_unitario: Decimal
    subtotal: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "produtoId": self.produto_id,
            "nome": self.nome,
            "quantidade": self.quantidade,
            "precoUnitario": str(self.preco_unitario),
            "subtotal": str(self.subtotal),
        }

@dataclass
class VendaResultado:
    pedido_id: int
    total: Decimal
    forma_pagamento: FormaPagamento
    itens: List[LinhaVenda] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pedidoId": self.pedido_id,
            "total": str(self.total),
            "formaPagamento": self.forma_pagamento.value,
            "itens": [i.to_dict() for i in self.itens],
        }


# =============================================================================
# Validação do pedido (antes de abrir transação)
# =============================================================================

def _inteiro_positivo(v) -> bool:
    return isinstance(v, int) and not isinstance(v, bool) and v >= 1

def validar_venda(
    itens: Sequence[Union[ItemVenda, Mapping[str, Any]]],
    forma_pagamento: Union[str, FormaPagamento, None],
) -> Tuple[List[ItemVenda], FormaPagamento]:
    _ensure(isinstance(itens, (list, tuple)) and len(itens) > 0,
            "Lista de itens é obrigatória e não pode estar vazia")
    try:
        forma = FormaPagamento(forma_pagamento)
    except (ValueError, TypeError):
        raise ValidacaoError(
            f"Forma de pagamento inválida. Use: {', '.join(FormaPagamento.valores())}"
        ) from None

    out: List[ItemVenda] = []
    for raw in itens:
        if isinstance(raw, ItemVenda):
            pid, qtd = raw.produto_id, raw.quantidade
        elif isinstance(raw, Mapping):
            pid, qtd = raw.get("produtoId"), raw.get("quantidade")
        else:
            pid = qtd = None
        _ensure(_inteiro_positivo(pid) and _inteiro_positivo(qtd),
                "Todos os itens devem ter produtoId e quantidade > 0")
        out.append(ItemVenda(produto_id=pid, quantidade=qtd))
    return out, forma


# =============================================================================
# Transação
# =============================================================================

@contextmanager
def transacao_venda(engine, isolation_level: str = ISOLAMENTO_PADRAO):
    """
    Empresta uma conexão do pool pela venda inteira.
    Commit no fim; rollback em qualquer exceção (inclusive cancelamento).
    Erros de domínio passam intactos; erros de banco viram FalhaTransacao.
    """
    try:
        conn = engine.connect()
    except PoolTimeoutError as e:
        logger.error("Pool de conexões esgotado: %s", e)
        raise BancoIndisponivel("Banco de dados ocupado, tente novamente em instantes") from e
    except SQLAlchemyError as e:
        logger.exception("Falha ao conectar ao banco")
        raise FalhaTransacao("Erro ao processar venda") from e

    trans = None
    try:
        conn.execution_options(isolation_level=isolation_level)
        trans = conn.begin()
        yield conn
        trans.commit()
    except BaseException as e:
        if trans is not None and trans.is_active:
            try:
                trans.rollback()
            except SQLAlchemyError:
                logger.exception("Erro ao fazer rollback da venda")
        if isinstance(e, ServiceError):
            raise
        if isinstance(e, SQLAlchemyError):
            logger.exception("Erro ao processar venda")
            raise FalhaTransacao("Erro ao processar venda") from e
        raise
    finally:
        conn.close()


def _inserir_pedido(conn, schema: PedidosSchema, total: Decimal, forma: FormaPagamento) -> int:
    pedidos = tabela_pedidos(schema)
    valores: Dict[str, Any] = {}
    if schema.data_hora:
        valores[schema.data_hora] = func.now()
    if schema.total:
        valores[schema.total] = total
    if schema.forma_pagamento:
        valores[schema.forma_pagamento] = forma.value

    stmt = insert(pedidos)
    if valores:
        stmt = stmt.values(valores)
    if conn.dialect.insert_returning:
        return conn.execute(stmt.returning(pedidos.c.Id)).scalar_one()
    return conn.execute(stmt).lastrowid


def _inserir_item(conn, schema: PedidosSchema, pedido_id: int, linha: LinhaVenda, forma: FormaPagamento) -> None:
    itens = tabela_itens(schema)
    valores: Dict[str, Any] = {
        "PedidoId": pedido_id,
        "ProdutoId": linha.produto_id,
        "Quantidade": linha.quantidade,
        "PrecoUnitario": linha.preco_unitario,
    }
    if schema.item_forma_pagamento:
        valores[schema.item_forma_pagamento] = forma.value
    conn.execute(insert(itens).values(valores))


def _conferir_estoque(itens: List[ItemVenda], produtos) -> None:
    # soma por produto: dois itens do mesmo produto disputam o mesmo estoque
    pedidos_por_produto: "OrderedDict[int, int]" = OrderedDict()
    for it in itens:
        pedidos_por_produto[it.produto_id] = pedidos_por_produto.get(it.produto_id, 0) + it.quantidade
    for pid, qtd in pedidos_por_produto.items():
        p = produtos[pid]
        if p.estoque < qtd:
            logger.info("Venda recusada na pré-checagem: produto %s disponível=%s solicitado=%s",
                        pid, p.estoque, qtd)
            raise EstoqueInsuficiente(pid, p.nome, solicitado=qtd, disponivel=p.estoque,
                                      origem=EstoqueInsuficiente.PRE_CHECAGEM)


class _DescritorDesatualizado(Exception):
    """Insert recusado com descritor vindo do cache; a transação já foi desfeita."""


def finalizar_venda(
    engine,
    prober: SchemaProber,
    itens,
    forma_pagamento,
    isolation_level: str = ISOLAMENTO_PADRAO,
    bloquear_linhas: bool = False,
) -> VendaResultado:
    """
    Executa uma venda completa como unidade atômica.

    Levanta ServiceError (validação), ProdutoNaoEncontrado,
    EstoqueInsuficiente, FalhaTransacao ou BancoIndisponivel.

    Falhas não são repetidas, com uma exceção: se o insert foi montado a
    partir do descritor em cache e o banco o recusou, a venda (já desfeita)
    é refeita uma única vez com o catálogo relido.
    """
    pedido, forma = validar_venda(itens, forma_pagamento)
    try:
        return _executar_venda(engine, prober, pedido, forma, isolation_level, bloquear_linhas, True)
    except _DescritorDesatualizado as e:
        logger.warning("Schema de Pedidos em cache desatualizado, relendo o catálogo: %s", e.__cause__)
        return _executar_venda(engine, prober, pedido, forma, isolation_level, bloquear_linhas, False)


def _executar_venda(engine, prober: SchemaProber, pedido: List[ItemVenda], forma: FormaPagamento,
                    isolation_level: str, bloquear_linhas: bool, usar_cache: bool) -> VendaResultado:
    ids = sorted({it.produto_id for it in pedido})

    with transacao_venda(engine, isolation_level) as conn:
        schema, do_cache = prober.consultar(conn, usar_cache=usar_cache)
        produtos = ler_produtos(conn, ids, bloquear=bloquear_linhas)

        faltando = [pid for pid in ids if pid not in produtos]
        if faltando:
            logger.info("Venda recusada: produtos inexistentes %s", faltando)
            raise ProdutoNaoEncontrado(faltando)

        _conferir_estoque(pedido, produtos)

        # preço capturado na leitura acima, não relido
        linhas = []
        for it in pedido:
            p = produtos[it.produto_id]
            linhas.append(LinhaVenda(
                produto_id=p.id,
                nome=p.nome,
                quantidade=it.quantidade,
                preco_unitario=p.preco,
                subtotal=_as_money(p.preco * it.quantidade),
            ))
        total = _as_money(sum((l.subtotal for l in linhas), Decimal("0.00")))

        def _inserir(fn, *args):
            try:
                return fn(conn, schema, *args)
            except SQLAlchemyError as e:
                if do_cache:
                    prober.invalidar()
                    raise _DescritorDesatualizado() from e
                raise

        try:
            pedido_id = _inserir(_inserir_pedido, total, forma)
            for linha in linhas:
                _inserir(_inserir_item, pedido_id, linha, forma)
                if baixar_estoque(conn, linha.produto_id, linha.quantidade) == 0:
                    logger.warning("Baixa de estoque recusada na escrita (venda concorrente): "
                                   "produto %s quantidade %s", linha.produto_id, linha.quantidade)
                    raise EstoqueInsuficiente(linha.produto_id, linha.nome, solicitado=linha.quantidade,
                                              origem=EstoqueInsuficiente.CONCORRENTE)
        except SQLAlchemyError:
            # descritor pode estar velho (coluna removida/renomeada)
            prober.invalidar()
            raise

    logger.info("Venda finalizada: pedido %s total %s %s (%d itens)",
                pedido_id, total, forma.value, len(linhas))
    return VendaResultado(pedido_id=pedido_id, total=total, forma_pagamento=forma, itens=linhas)
