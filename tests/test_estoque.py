# tests/test_estoque.py
from decimal import Decimal

from pdv.core.estoque import baixar_estoque, ler_produtos


def test_ler_produtos_ignora_ids_inexistentes(legado):
    with legado.connect() as conn:
        r = ler_produtos(conn, [2, 999, 1, 2])
    assert sorted(r) == [1, 2]
    assert r[1].nome == "Arroz 5kg"
    assert r[1].preco == Decimal("10.00")
    assert r[2].estoque == 1


def test_ler_produtos_lista_vazia(legado):
    with legado.connect() as conn:
        assert ler_produtos(conn, []) == {}


def test_baixa_com_estoque_suficiente(legado):
    with legado.begin() as conn:
        assert baixar_estoque(conn, 1, 5) == 1
        assert ler_produtos(conn, [1])[1].estoque == 0


def test_baixa_sem_estoque_nao_altera(legado):
    with legado.begin() as conn:
        assert baixar_estoque(conn, 2, 2) == 0
        assert ler_produtos(conn, [2])[2].estoque == 1


def test_baixa_produto_inexistente(legado):
    with legado.begin() as conn:
        assert baixar_estoque(conn, 999, 1) == 0


def test_baixas_sucessivas_param_no_zero(legado):
    with legado.begin() as conn:
        resultados = [baixar_estoque(conn, 1, 2) for _ in range(4)]
        assert resultados == [1, 1, 0, 0]
        assert ler_produtos(conn, [1])[1].estoque == 1
