# tests/test_schema.py
import pytest

from pdv.core.schema import SCHEMA_PADRAO, SchemaProber, detectar_papeis


# =============================================================================
# detectar_papeis
# =============================================================================

@pytest.mark.parametrize("colunas, esperado", [
    (["Id", "DataHora", "Total", "FormaPagamento"],
     {"data_hora": "DataHora", "total": "Total", "forma_pagamento": "FormaPagamento"}),
    (["Id", "DataPedido", "ValorTotal", "Pagamento"],
     {"data_hora": "DataPedido", "total": "ValorTotal", "forma_pagamento": "Pagamento"}),
    (["id", "hora_venda", "valor"], {"data_hora": "hora_venda", "total": "valor"}),
    (["Id", "Cliente", "Obs"], {}),
])
def test_detecta_papeis_por_palavra_chave(colunas, esperado):
    assert detectar_papeis(colunas) == esperado


def test_primeira_coluna_que_casa_vence():
    r = detectar_papeis(["Id", "DataCriacao", "DataHora", "Total", "ValorPago"])
    assert r["data_hora"] == "DataCriacao"
    assert r["total"] == "Total"


def test_coluna_recebe_no_maximo_um_papel():
    # "DataPagamento" é data; não pode virar forma de pagamento também
    r = detectar_papeis(["Id", "DataPagamento", "Total"])
    assert r == {"data_hora": "DataPagamento", "total": "Total"}


def test_filtra_papeis_pedidos():
    r = detectar_papeis(["Id", "PedidoId", "FormaPagamento", "Total"], papeis=("forma_pagamento",))
    assert r == {"forma_pagamento": "FormaPagamento"}


# =============================================================================
# SchemaProber
# =============================================================================

def test_schema_completo(legado, executar):
    executar(
        legado,
        'CREATE TABLE "Pedidos" ("Id" INTEGER PRIMARY KEY, "DataHora" DATETIME, "Total" NUMERIC(10,2), "FormaPagamento" VARCHAR(20))',
        'CREATE TABLE "PedidoItens" ("Id" INTEGER PRIMARY KEY, "PedidoId" INT, "ProdutoId" INT, "Quantidade" INT, "PrecoUnitario" NUMERIC(10,2))',
    )
    with legado.connect() as conn:
        s = SchemaProber(ttl=0).pedidos(conn)
    assert (s.data_hora, s.total, s.forma_pagamento) == ("DataHora", "Total", "FormaPagamento")
    assert s.item_forma_pagamento is None
    assert not s.fallback


def test_pagamento_so_no_item(legado, executar):
    executar(
        legado,
        'CREATE TABLE "Pedidos" ("Id" INTEGER PRIMARY KEY)',
        'CREATE TABLE "PedidoItens" ("Id" INTEGER PRIMARY KEY, "PedidoId" INT, "ProdutoId" INT, '
        '"Quantidade" INT, "PrecoUnitario" NUMERIC(10,2), "FormaPagamento" VARCHAR(20))',
    )
    with legado.connect() as conn:
        s = SchemaProber(ttl=0).pedidos(conn)
    assert s.data_hora is None and s.total is None and s.forma_pagamento is None
    assert s.item_forma_pagamento == "FormaPagamento"


def test_catalogo_ilegivel_usa_padrao_sem_cachear(legado, executar):
    prober = SchemaProber(ttl=300)
    with legado.connect() as conn:
        assert prober.pedidos(conn) == SCHEMA_PADRAO

    executar(legado, 'CREATE TABLE "Pedidos" ("Id" INTEGER PRIMARY KEY, "ValorTotal" NUMERIC(10,2))')
    with legado.connect() as conn:
        s = prober.pedidos(conn)
    assert not s.fallback
    assert s.total == "ValorTotal"
    assert s.data_hora is None


def test_cache_e_invalidacao(legado, executar):
    executar(
        legado,
        'CREATE TABLE "Pedidos" ("Id" INTEGER PRIMARY KEY, "Total" NUMERIC(10,2))',
        'CREATE TABLE "PedidoItens" ("Id" INTEGER PRIMARY KEY, "PedidoId" INT, "ProdutoId" INT, "Quantidade" INT, "PrecoUnitario" NUMERIC(10,2))',
    )
    prober = SchemaProber(ttl=300)
    with legado.connect() as conn:
        antes = prober.pedidos(conn)
    assert antes.forma_pagamento is None

    executar(legado, 'ALTER TABLE "Pedidos" ADD COLUMN "FormaPagamento" VARCHAR(20)')
    with legado.connect() as conn:
        assert prober.pedidos(conn) is antes

    prober.invalidar()
    with legado.connect() as conn:
        assert prober.pedidos(conn).forma_pagamento == "FormaPagamento"


def test_ttl_zero_sempre_le_o_catalogo(legado, executar):
    executar(legado, 'CREATE TABLE "Pedidos" ("Id" INTEGER PRIMARY KEY)',
             'CREATE TABLE "PedidoItens" ("Id" INTEGER PRIMARY KEY, "PedidoId" INT)')
    prober = SchemaProber(ttl=0)
    with legado.connect() as conn:
        assert prober.pedidos(conn).total is None
    executar(legado, 'ALTER TABLE "Pedidos" ADD COLUMN "Total" NUMERIC(10,2)')
    with legado.connect() as conn:
        assert prober.pedidos(conn).total == "Total"


def test_consultar_informa_origem_do_descritor(legado, executar):
    executar(legado, 'CREATE TABLE "Pedidos" ("Id" INTEGER PRIMARY KEY, "Total" NUMERIC(10,2))',
             'CREATE TABLE "PedidoItens" ("Id" INTEGER PRIMARY KEY, "PedidoId" INT)')
    prober = SchemaProber(ttl=300)
    with legado.connect() as conn:
        primeiro, do_cache = prober.consultar(conn)
        assert not do_cache
        assert prober.consultar(conn) == (primeiro, True)
        _, do_cache = prober.consultar(conn, usar_cache=False)
        assert not do_cache
