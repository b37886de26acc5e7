"""Validación compartida de entradas: ids numéricos y cuerpos JSON."""
from flask import request

from agendamiento.errors import ValidationError

# rango de una columna INTEGER/BIGINT con signo
MAX_ID = 2 ** 63 - 1


def parse_id(valor, campo="id"):
    """
    Acepta enteros o cadenas de dígitos ASCII dentro de 1..MAX_ID.

    Raises:
        ValidationError: bool, float, dígitos no ASCII ("²") o fuera de rango
    """
    if isinstance(valor, str):
        valor = valor.strip()
        if not (valor.isascii() and valor.isdigit()):
            raise ValidationError(f"El campo {campo} debe ser numérico")
        valor = int(valor)
    if isinstance(valor, bool) or not isinstance(valor, int):
        raise ValidationError(f"El campo {campo} debe ser numérico")
    if not 1 <= valor <= MAX_ID:
        raise ValidationError(f"El campo {campo} está fuera de rango")
    return valor


def json_body() -> dict:
    """Cuerpo JSON de la petición; debe ser un objeto."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Se esperaba un objeto JSON")
    return data
