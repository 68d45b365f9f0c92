# pdv/core/forms.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from flask_wtf import FlaskForm
from wtforms import StringField, BooleanField
from wtforms.fields.core import Field
from wtforms.validators import ValidationError


# =============================================================================
# Utilidades
# =============================================================================

FALSE_VALUES = (False, "false", "False", "0", "", None)

def _q2(v: Decimal) -> Decimal:
    return v.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

def parse_decimal(value) -> Decimal:
    """
    Converte número JSON ou texto (vírgula ou ponto) para Decimal com 2 casas.
    """
    if value is None or isinstance(value, bool):
        raise ValueError("Valor numérico inválido")
    if isinstance(value, (int, float, Decimal)):
        s = str(value)
    else:
        s = str(value).strip()
        s = s.replace(".", "").replace(",", ".") if s.count(",") == 1 and s.count(".") > 0 else s.replace(",", ".")
    try:
        d = Decimal(s)
    except InvalidOperation:
        raise ValueError("Valor numérico inválido")
    if not d.is_finite():
        raise ValueError("Valor numérico inválido")
    return _q2(d)

def parse_int(value) -> int:
    if isinstance(value, bool) or value is None:
        raise ValueError("Valor inteiro inválido")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValueError("Valor inteiro inválido")


# =============================================================================
# Campos customizados
# =============================================================================

class DecimalMoneyField(Field):
    """
    Número ou texto que vira Decimal com 2 casas.
    """
    def __init__(self, label=None, validators=None, **kwargs):
        super().__init__(label, validators, **kwargs)
        self.data = None

    def _value(self):
        return str(self.data) if isinstance(self.data, Decimal) else (self.data or "")

    def process_formdata(self, valuelist):
        if valuelist:
            self.data = parse_decimal(valuelist[0])

class IntegerQtyField(Field):
    """
    Inteiro estrito: rejeita booleanos e frações.
    """
    def __init__(self, label=None, validators=None, **kwargs):
        super().__init__(label, validators, **kwargs)
        self.data = None

    def _value(self):
        return "" if self.data is None else str(self.data)

    def process_formdata(self, valuelist):
        if valuelist:
            self.data = parse_int(valuelist[0])

def _presente(field) -> bool:
    return bool(field.raw_data)


# =============================================================================
# Forms da API (corpo JSON)
# =============================================================================
# FlaskForm lê request.get_json() quando o corpo é JSON.

class ApiForm(FlaskForm):
    class Meta:
        csrf = False

    def first_error(self) -> Optional[str]:
        for errors in self.errors.values():
            if errors:
                return errors[-1]
        return None

class ProductCreateForm(ApiForm):
    nome = StringField("Nome")
    preco = DecimalMoneyField("Preço")
    estoque = IntegerQtyField("Estoque")

    def validate_nome(self, field):
        nome = field.data.strip() if isinstance(field.data, str) else ""
        if not nome:
            raise ValidationError("Nome do produto é obrigatório")
        if len(nome) > 100:
            raise ValidationError("Nome deve ter no máximo 100 caracteres")
        field.data = nome

    def validate_preco(self, field):
        if field.process_errors or field.data is None or field.data < 0:
            raise ValidationError("Preço inválido (deve ser número >= 0)")

    def validate_estoque(self, field):
        if not _presente(field):
            field.data = 0
            return
        if field.process_errors or field.data is None or field.data < 0:
            raise ValidationError("Estoque inválido (deve ser número inteiro >= 0)")

class ProductUpdateForm(ApiForm):
    preco = DecimalMoneyField("Preço")
    estoque = IntegerQtyField("Estoque")
    ativo = BooleanField("Ativo", false_values=FALSE_VALUES)

    def validate_preco(self, field):
        if _presente(field) and (field.process_errors or field.data is None or field.data < 0):
            raise ValidationError("Preço inválido (deve ser número >= 0)")

    def validate_estoque(self, field):
        if _presente(field) and (field.process_errors or field.data is None or field.data < 0):
            raise ValidationError("Estoque inválido (deve ser inteiro >= 0)")

    def alteracoes(self) -> dict:
        """Só os campos enviados no corpo."""
        return {f.name: f.data for f in (self.preco, self.estoque, self.ativo) if _presente(f)}

class StockAddForm(ApiForm):
    quantidade = IntegerQtyField("Quantidade")

    def validate_quantidade(self, field):
        if field.process_errors or field.data is None or field.data < 1:
            raise ValidationError("Quantidade inválida (deve ser inteiro >= 1)")
