# pdv/core/schema.py
"""
Descoberta das colunas opcionais de Pedidos/PedidoItens no banco legado.

O banco não é nosso: dependendo da instalação, Pedidos pode ou não ter
colunas de data, total e forma de pagamento, e com nomes variados
(DataHora, DataPedido, ValorTotal...). Aqui o catálogo é lido uma vez e
convertido num descritor explícito (PedidosSchema); o resto do código só
trabalha com esse descritor.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

from sqlalchemy import DateTime, Integer, Numeric, String, column, inspect, table
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

TABELA_PEDIDOS = "Pedidos"
TABELA_PEDIDO_ITENS = "PedidoItens"

# papel -> palavras-chave (ordem importa: cada coluna recebe no máximo um papel)
PAPEIS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("data_hora", ("data", "hora", "datetime")),
    ("total", ("total", "valor")),
    ("forma_pagamento", ("pagamento", "forma")),
)


@dataclass(frozen=True)
class PedidosSchema:
    data_hora: Optional[str] = None
    total: Optional[str] = None
    forma_pagamento: Optional[str] = None
    item_forma_pagamento: Optional[str] = None
    fallback: bool = False


# Assumido quando o catálogo não pode ser lido
SCHEMA_PADRAO = PedidosSchema(
    data_hora="DataHora",
    total="Total",
    forma_pagamento="FormaPagamento",
    item_forma_pagamento=None,
    fallback=True,
)


def detectar_papeis(colunas: Iterable[str], papeis: Iterable[str] = ("data_hora", "total", "forma_pagamento")) -> Dict[str, str]:
    """Mapeia papel -> nome real da coluna. A primeira coluna que casar vence."""
    wanted = set(papeis)
    found: Dict[str, str] = {}
    for nome in colunas:
        low = nome.lower()
        if low == "id":
            continue
        for papel, chaves in PAPEIS:
            if any(k in low for k in chaves):
                if papel in wanted and papel not in found:
                    found[papel] = nome
                break
    return found


def tabela_pedidos(schema: PedidosSchema, data_hora_padrao: Optional[str] = None):
    """Pedidos só com as colunas que o descritor diz existirem."""
    cols = [column("Id", Integer)]
    dh = schema.data_hora or data_hora_padrao
    if dh:
        cols.append(column(dh, DateTime))
    if schema.total:
        cols.append(column(schema.total, Numeric(10, 2)))
    if schema.forma_pagamento:
        cols.append(column(schema.forma_pagamento, String(20)))
    return table(TABELA_PEDIDOS, *cols)


def tabela_itens(schema: PedidosSchema):
    cols = [
        column("Id", Integer),
        column("PedidoId", Integer),
        column("ProdutoId", Integer),
        column("Quantidade", Integer),
        column("PrecoUnitario", Numeric(10, 2)),
    ]
    if schema.item_forma_pagamento:
        cols.append(column(schema.item_forma_pagamento, String(20)))
    return table(TABELA_PEDIDO_ITENS, *cols)


def _colunas(conn, tabela: str):
    return [c["name"] for c in inspect(conn).get_columns(tabela)]


class SchemaProber:
    """
    Lê o catálogo pela conexão recebida (dentro da transação de quem chama)
    e guarda o resultado por `ttl` segundos. ttl=0 desliga o cache.
    Resultados de fallback nunca são guardados.
    """

    def __init__(self, ttl: float = 300):
        self.ttl = ttl
        self._lock = threading.Lock()
        self._cached: Optional[PedidosSchema] = None
        self._cached_at = 0.0

    def invalidar(self) -> None:
        with self._lock:
            if self._cached is not None:
                logger.info("Cache de schema de Pedidos invalidado")
            self._cached = None
            self._cached_at = 0.0

    def _do_cache(self) -> Optional[PedidosSchema]:
        with self._lock:
            if self._cached is None or self.ttl <= 0:
                return None
            if time.monotonic() - self._cached_at > self.ttl:
                self._cached = None
                return None
            return self._cached

    def pedidos(self, conn) -> PedidosSchema:
        return self.consultar(conn)[0]

    def consultar(self, conn, usar_cache: bool = True) -> Tuple[PedidosSchema, bool]:
        """Descritor e se ele veio do cache. usar_cache=False força a leitura do catálogo."""
        if usar_cache:
            cached = self._do_cache()
            if cached is not None:
                return cached, True

        try:
            header = detectar_papeis(_colunas(conn, TABELA_PEDIDOS))
        except SQLAlchemyError as e:
            logger.warning("Falha ao ler colunas de %s, usando schema padrão: %s", TABELA_PEDIDOS, e)
            return SCHEMA_PADRAO, False

        completo = True
        try:
            item = detectar_papeis(_colunas(conn, TABELA_PEDIDO_ITENS), papeis=("forma_pagamento",))
        except SQLAlchemyError as e:
            logger.warning("Falha ao ler colunas de %s: %s", TABELA_PEDIDO_ITENS, e)
            item = {}
            completo = False

        schema = PedidosSchema(
            data_hora=header.get("data_hora"),
            total=header.get("total"),
            forma_pagamento=header.get("forma_pagamento"),
            item_forma_pagamento=item.get("forma_pagamento"),
        )
        logger.debug("Schema de Pedidos: %s", schema)

        if self.ttl > 0 and completo:
            with self._lock:
                self._cached = schema
                self._cached_at = time.monotonic()
        return schema, False
