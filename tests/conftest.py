# tests/conftest.py
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, select, text

from pdv import create_app
from pdv.extensions import db
from pdv.core.models import Produto


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture()
def app(tmp_path):
    """App nova por teste, com banco SQLite em arquivo temporário."""
    app = create_app("config.TestingConfig", {
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'pdv.db'}",
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def produtos(app):
    """Arroz (estoque 5, R$ 10,00), Feijão (estoque 1, R$ 7,50), Café inativo."""
    itens = [
        Produto(nome="Arroz 5kg", preco=Decimal("10.00"), estoque=5),
        Produto(nome="Feijão 1kg", preco=Decimal("7.50"), estoque=1),
        Produto(nome="Café 500g", preco=Decimal("18.90"), estoque=10, ativo=False),
    ]
    db.session.add_all(itens)
    db.session.commit()
    return {"arroz": itens[0].id, "feijao": itens[1].id, "cafe": itens[2].id}


# =============================================================================
# Helpers de leitura direta no banco
# =============================================================================

@pytest.fixture()
def banco(app):
    return Banco(db.engine)


class Banco:
    """Lê o banco por fora da sessão da app (sem identity map)."""

    def __init__(self, engine):
        self.engine = engine

    def estoque(self, produto_id):
        c = Produto.__mapper__.columns
        with self.engine.connect() as conn:
            return conn.execute(select(c.estoque).where(c.id == produto_id)).scalar_one()

    def contar(self, tabela):
        with self.engine.connect() as conn:
            return conn.execute(text(f'SELECT COUNT(*) FROM "{tabela}"')).scalar_one()

    def linhas(self, sql):
        with self.engine.connect() as conn:
            return [dict(r._mapping) for r in conn.execute(text(sql))]


# =============================================================================
# Banco legado cru (sem Flask), para variações de schema
# =============================================================================

PRODUTOS_DDL = """
CREATE TABLE "Produtos" (
    "Id" INTEGER PRIMARY KEY AUTOINCREMENT,
    "Nome" VARCHAR(100) NOT NULL,
    "Preco" NUMERIC(10, 2) NOT NULL,
    "Estoque" INTEGER NOT NULL,
    "Ativo" BOOLEAN
)
"""


@pytest.fixture()
def legado(tmp_path):
    """Engine SQLite vazio; cada teste cria Pedidos/PedidoItens como quiser."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'legado.db'}",
        connect_args={"timeout": 15, "check_same_thread": False},
    )
    with engine.begin() as conn:
        conn.execute(text(PRODUTOS_DDL))
        conn.execute(text(
            "INSERT INTO \"Produtos\" (\"Nome\", \"Preco\", \"Estoque\", \"Ativo\") "
            "VALUES ('Arroz 5kg', 10.00, 5, 1), ('Feijão 1kg', 7.50, 1, NULL)"
        ))
    yield engine
    engine.dispose()


@pytest.fixture()
def executar():
    def _executar(engine, *sql):
        with engine.begin() as conn:
            for s in sql:
                conn.execute(text(s))
    return _executar
