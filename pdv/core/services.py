# pdv/core/services.py
from __future__ import annotations

import logging
import unicodedata
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import Date, and_, cast, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from pdv.extensions import db
from pdv.core.models import Produto, _as_money
from pdv.core.schema import tabela_itens, tabela_pedidos

logger = logging.getLogger(__name__)

# =============================================================================
# Exceções e utilidades
# =============================================================================

class ServiceError(Exception):
    status_code = 400
    tipo = "validacao"

    def __init__(self, msg: str):
        super().__init__(msg)
        self.msg = msg

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.msg, "tipo": self.tipo}

class ValidacaoError(ServiceError):
    pass

class ProdutoNaoEncontrado(ServiceError):
    status_code = 404
    tipo = "nao_encontrado"

    def __init__(self, ids: Sequence[int] = (), msg: Optional[str] = None):
        self.ids = list(ids)
        if msg is None:
            if len(self.ids) == 1:
                msg = f"Produto {self.ids[0]} não encontrado"
            else:
                msg = f"Um ou mais produtos não foram encontrados: {', '.join(str(i) for i in self.ids)}"
        super().__init__(msg)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        if self.ids:
            d["produtos"] = self.ids
        return d

class EstoqueInsuficiente(ServiceError):
    status_code = 409
    tipo = "estoque_insuficiente"

    PRE_CHECAGEM = "pre_checagem"
    CONCORRENTE = "concorrente"

    def __init__(self, produto_id: int, nome: str, solicitado: int,
                 disponivel: Optional[int] = None, origem: str = PRE_CHECAGEM):
        self.produto_id = produto_id
        self.nome = nome
        self.solicitado = solicitado
        self.disponivel = disponivel
        self.origem = origem
        if origem == self.CONCORRENTE:
            msg = (f"Estoque insuficiente para produto {nome} "
                   f"(o estoque foi alterado por outra venda durante a transação)")
        else:
            msg = (f"Estoque insuficiente para produto {nome} "
                   f"(disponível: {disponivel}, solicitado: {solicitado})")
        super().__init__(msg)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["produtoId"] = self.produto_id
        return d

class FalhaTransacao(ServiceError):
    status_code = 500
    tipo = "falha_transacao"

class BancoIndisponivel(FalhaTransacao):
    status_code = 503
    tipo = "banco_indisponivel"

def _ensure(cond: bool, msg: str):
    if not cond:
        raise ValidacaoError(msg)

@contextmanager
def transaction():
    try:
        yield
        db.session.commit()
    except IntegrityError as ie:
        db.session.rollback()
        logger.warning("Violação de integridade: %s", ie.orig)
        raise ValidacaoError(f"Violação de integridade: {ie.orig}") from ie
    except ServiceError:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("Erro de banco")
        raise FalhaTransacao("Erro ao acessar o banco de dados") from e

# =============================================================================
# Produtos
# =============================================================================

BUSCA_LIMITE_PADRAO = 100
BUSCA_LIMITE_MAX = 2000
COLLATION_SEM_ACENTO = "Latin1_General_CI_AI"

def dobrar_texto(s: Optional[str]) -> Optional[str]:
    """Minúsculas e sem acentos: "FEIJÃO" -> "feijao"."""
    if s is None:
        return None
    s = unicodedata.normalize("NFKD", s)
    return "".join(ch for ch in s if not unicodedata.combining(ch)).casefold()

def _nome_contem(texto: str):
    # ignora acentos e caixa; SQLite usa a função registrada em extensions
    dialeto = db.engine.dialect.name
    if dialeto == "mssql":
        return Produto.nome.collate(COLLATION_SEM_ACENTO).like(f"%{texto}%")
    if dialeto == "sqlite":
        return func.pdv_dobrar(Produto.nome).like(f"%{dobrar_texto(texto)}%")
    return func.lower(Produto.nome).like(f"%{texto.lower()}%")

def buscar_produtos(query: str = "", limit: Optional[int] = None) -> List[Produto]:
    """
    - número: produto ativo com aquele Id
    - texto (>= 2 chars): ativos cujo nome contém o texto
    - vazio: listagem para estoque, inclusive inativos
    """
    q = (query or "").strip()
    ativo = or_(Produto.ativo.is_(True), Produto.ativo.is_(None))

    if q.isdigit():
        return Produto.query.filter(Produto.id == int(q), ativo).all()
    if q:
        if len(q) < 2:
            return []
        return (
            Produto.query
            .filter(_nome_contem(q), ativo)
            .order_by(Produto.nome)
            .all()
        )
    n = BUSCA_LIMITE_PADRAO if limit is None else max(1, min(int(limit), BUSCA_LIMITE_MAX))
    return Produto.query.order_by(Produto.nome).limit(n).all()

def criar_produto(nome: str, preco, estoque: int = 0) -> Produto:
    nome = (nome or "").strip()
    _ensure(len(nome) > 0, "Nome do produto é obrigatório")
    _ensure(len(nome) <= 100, "Nome deve ter no máximo 100 caracteres")
    _ensure(_as_money(preco) >= 0, "Preço inválido (deve ser número >= 0)")
    _ensure(estoque is not None and int(estoque) >= 0, "Estoque inválido (deve ser número inteiro >= 0)")
    p = Produto(nome=nome, preco=_as_money(preco), estoque=int(estoque), ativo=True)
    db.session.add(p)
    db.session.flush()
    logger.info("Produto criado: %s (%s)", p.id, p.nome)
    return p

def atualizar_produto(produto_id: int, dados: Dict[str, Any]) -> Produto:
    campos_editaveis = {"preco", "estoque", "ativo"}
    dados = {k: v for k, v in dados.items() if k in campos_editaveis}
    _ensure(len(dados) > 0, "Envie ao menos um campo: preco, estoque ou ativo")
    if "preco" in dados:
        _ensure(_as_money(dados["preco"]) >= 0, "Preço inválido (deve ser número >= 0)")
    if "estoque" in dados:
        _ensure(int(dados["estoque"]) >= 0, "Estoque inválido (deve ser inteiro >= 0)")

    p = db.session.get(Produto, produto_id)
    if not p:
        raise ProdutoNaoEncontrado([produto_id])
    before = p.to_dict()
    for k, v in dados.items():
        setattr(p, k, bool(v) if k == "ativo" else v)
    db.session.flush()
    logger.info("Produto %s atualizado: %s -> %s", p.id, before, p.to_dict())
    return p

def repor_estoque(produto_id: int, quantidade: int) -> Produto:
    _ensure(quantidade is not None and int(quantidade) >= 1, "Quantidade inválida (deve ser inteiro >= 1)")
    # incremento atômico no banco
    n = (
        db.session.query(Produto)
        .filter(Produto.id == produto_id)
        .update({Produto.estoque: Produto.estoque + int(quantidade)}, synchronize_session=False)
    )
    if n == 0:
        raise ProdutoNaoEncontrado([produto_id])
    p = db.session.get(Produto, produto_id, populate_existing=True)
    logger.info("Reposição de estoque: produto %s +%s = %s", produto_id, quantidade, p.estoque)
    return p

# =============================================================================
# Relatórios
# =============================================================================

TOP_N = 10

def _dia(col):
    # date() não existe no SQL Server; CAST AS DATE no SQLite vira número
    if db.engine.dialect.name == "sqlite":
        return func.date(col)
    return cast(col, Date)

def _iso(v) -> Optional[str]:
    if v is None:
        return None
    return v.isoformat() if hasattr(v, "isoformat") else str(v)

def relatorio_vendas(prober, data_ini: Optional[date] = None, data_fim: Optional[date] = None) -> Dict[str, Any]:
    """
    Resumo de vendas no período [data_ini, data_fim] (datas inclusivas).
    Faturamento = soma de Quantidade * PrecoUnitario dos itens.
    """
    conn = db.session.connection()
    schema = prober.pedidos(conn)
    col_data = schema.data_hora or "DataHora"

    pedidos = tabela_pedidos(schema, data_hora_padrao=col_data)
    itens = tabela_itens(schema)
    dh = pedidos.c[col_data]

    filtros = []
    if data_ini:
        filtros.append(dh >= datetime.combine(data_ini, time.min))
    if data_fim:
        filtros.append(dh < datetime.combine(data_fim + timedelta(days=1), time.min))
    periodo = and_(*filtros) if filtros else None

    pc = Produto.__mapper__.columns
    valor = itens.c.Quantidade * itens.c.PrecoUnitario
    base = itens.join(pedidos, pedidos.c.Id == itens.c.PedidoId)
    produto_cols = (
        pc.id.label("id"), pc.nome.label("nome"),
        pc.estoque.label("estoque"), pc.preco.label("preco"),
    )

    def _filtrar(stmt):
        return stmt.where(periodo) if periodo is not None else stmt

    # 1. por dia
    dia = _dia(dh).label("dia")
    por_dia = db.session.execute(
        _filtrar(
            select(dia, func.sum(valor).label("total"), func.count(pedidos.c.Id.distinct()).label("qtd"))
            .select_from(base)
        ).group_by(dia).order_by(dia.desc())
    ).all()

    # 2. por forma de pagamento (cabeçalho, senão item)
    por_forma = []
    if schema.forma_pagamento:
        fp = pedidos.c[schema.forma_pagamento]
    elif schema.item_forma_pagamento:
        fp = itens.c[schema.item_forma_pagamento]
    else:
        fp = None
    if fp is not None:
        forma = fp.label("forma")
        total_forma = func.sum(valor).label("total")
        por_forma = db.session.execute(
            _filtrar(select(forma, total_forma).select_from(base))
            .group_by(fp).order_by(total_forma.desc())
        ).all()

    # 3-5. por produto
    qtd_vendida = func.sum(itens.c.Quantidade).label("qtd")
    faturamento = func.sum(valor).label("faturamento")

    def _por_produto(ordem, limite):
        stmt = _filtrar(
            select(*produto_cols, qtd_vendida, faturamento)
            .select_from(base.join(Produto.__table__, pc.id == itens.c.ProdutoId))
        ).group_by(pc.id, pc.nome, pc.estoque, pc.preco).order_by(ordem.desc(), pc.id)
        if limite:
            stmt = stmt.limit(limite)
        return db.session.execute(stmt).all()

    top_qtd = _por_produto(qtd_vendida, TOP_N)
    top_fat = _por_produto(faturamento, TOP_N)
    vendidos = _por_produto(qtd_vendida, None)

    # 6. todos os produtos, com vendas do período (ou zero)
    vendas_periodo = _filtrar(
        select(
            itens.c.ProdutoId.label("produto_id"),
            itens.c.Quantidade.label("quantidade"),
            valor.label("valor"),
        ).select_from(base)
    ).subquery()
    todos = db.session.execute(
        select(
            *produto_cols,
            func.coalesce(func.sum(vendas_periodo.c.quantidade), 0).label("qtd"),
            func.coalesce(func.sum(vendas_periodo.c.valor), 0).label("faturamento"),
        )
        .select_from(Produto.__table__.outerjoin(vendas_periodo, vendas_periodo.c.produto_id == pc.id))
        .group_by(pc.id, pc.nome, pc.estoque, pc.preco)
        .order_by(pc.id)
    ).all()

    def _prod(row) -> Dict[str, Any]:
        return {
            "id": row.id,
            "nome": row.nome,
            "totalQuantidade": int(row.qtd or 0),
            "totalFaturamento": str(_as_money(row.faturamento)),
        }

    return {
        "periodo": {"from": _iso(data_ini), "to": _iso(data_fim)},
        "totalVendidoPorDia": [
            {"data": _iso(r.dia), "totalVendido": str(_as_money(r.total)), "numPedidos": int(r.qtd or 0)}
            for r in por_dia
        ],
        "totalPorFormaPagamento": [
            {"formaPagamento": r.forma, "total": str(_as_money(r.total))} for r in por_forma
        ],
        "topProdutosQuantidade": [_prod(r) for r in top_qtd],
        "topProdutosFaturamento": [_prod(r) for r in top_fat],
        "todosProdutosVendidos": [
            {**_prod(r), "estoqueAtual": r.estoque, "precoAtual": str(_as_money(r.preco))} for r in vendidos
        ],
        "todosProdutosPorId": [
            {
                "id": r.id,
                "nome": r.nome,
                "estoqueDisponivel": r.estoque,
                "precoAtual": str(_as_money(r.preco)),
                "quantidadeVendida": int(r.qtd or 0),
                "totalFaturado": str(_as_money(r.faturamento)),
            }
            for r in todos
        ],
    }

# =============================================================================
# Diagnóstico de conexão
# =============================================================================

_CLASSES_ERRO = (
    ("DNS_ERROR", ("getaddrinfo", "name or service not known", "enotfound", "could not translate host"),
     "Host inválido ou não encontrado", "Verifique o host em DATABASE_URL."),
    ("CONNECTION_REFUSED", ("timeout", "timed out", "refused", "could not connect", "unable to open"),
     "Conexão recusada ou timeout", "Verifique firewall, porta e se o servidor de banco está no ar."),
    ("LOGIN_FAILED", ("login failed", "authentication", "password"),
     "Credenciais inválidas ou sem permissão", "Verifique usuário e senha em DATABASE_URL."),
    ("TLS_ERROR", ("certificate", "tls", "ssl", "self signed"),
     "Erro de certificado TLS", "Revise as opções de criptografia/TrustServerCertificate da conexão."),
    ("DATABASE_NOT_FOUND", ("cannot open database", "does not exist", "unknown database"),
     "Database não encontrado", "Verifique o nome do database em DATABASE_URL."),
)

def classificar_erro_banco(exc: BaseException) -> Dict[str, str]:
    """Tipo/mensagem/dica para exibição, sem detalhes internos."""
    texto = str(getattr(exc, "orig", None) or exc).lower()
    for tipo, chaves, msg, dica in _CLASSES_ERRO:
        if any(k in texto for k in chaves):
            return {"type": tipo, "message": msg, "hint": dica}
    return {
        "type": "UNKNOWN_ERROR",
        "message": "Erro desconhecido ao acessar o banco",
        "hint": "Verifique DATABASE_URL e os logs do servidor.",
    }
