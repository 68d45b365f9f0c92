# tests/test_config.py
from types import SimpleNamespace

from config import _engine_options
from pdv.extensions import query_timeout_listener


def test_sqlite_usa_timeout_de_lock():
    opts = _engine_options("sqlite:///pdv.db", 12, 5)
    assert opts["connect_args"] == {"timeout": 12}
    assert "pool_timeout" not in opts


def test_mssql_timeout_de_login_e_pool():
    opts = _engine_options("mssql+pyodbc://sa:x@srv/PDV?driver=ODBC+Driver+18+for+SQL+Server", 12, 5)
    assert opts["connect_args"] == {"timeout": 12}
    assert opts["pool_timeout"] == 5


def test_postgresql_statement_timeout():
    opts = _engine_options("postgresql://pdv@localhost/pdv", 12, 5)
    assert opts["connect_args"] == {"options": "-c statement_timeout=12000"}


def test_timeout_de_consulta_ligado_na_conexao_mssql():
    conexao = SimpleNamespace(timeout=0)
    query_timeout_listener(12)(conexao, None)
    assert conexao.timeout == 12
