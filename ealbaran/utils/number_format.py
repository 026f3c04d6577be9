"""Number parsing utilities for amounts entered in Spanish or plain format."""
import re
from decimal import Decimal, InvalidOperation

ES_NUMBER_PATTERN = re.compile(r"^(?:\d{1,3}(?:\.\d{3})+|\d+)(?:,\d+)?$")


def parse_amount(value, field_name: str = 'importe') -> Decimal:
    """
    Parse an amount to Decimal with 2 decimals.

    Accepts numbers from JSON (12.5), plain strings ("12.50") and Spanish
    formatted strings ("1.234,56").

    Raises:
        ValueError: if the value is empty, invalid or negative.
    """
    if value is None or value == "":
        raise ValueError(f'El campo {field_name} es requerido')

    if isinstance(value, bool):
        raise ValueError(f'Valor inválido para {field_name}')

    if isinstance(value, (int, float, Decimal)):
        normalized = str(value)
    else:
        cleaned = str(value).strip()
        if ES_NUMBER_PATTERN.match(cleaned) and ',' in cleaned:
            normalized = cleaned.replace('.', '').replace(',', '.')
        else:
            normalized = cleaned

    try:
        amount = Decimal(normalized)
    except (InvalidOperation, ValueError):
        raise ValueError(f'Valor inválido para {field_name}: {value}')

    if not amount.is_finite():
        raise ValueError(f'Valor inválido para {field_name}: {value}')

    if amount < 0:
        raise ValueError(f'El campo {field_name} no puede ser negativo')

    return amount.quantize(Decimal('0.01'))
