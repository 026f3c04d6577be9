"""
Utilidades de formateo para PDFs, e-mails y respuestas JSON.
Incluye formatos de números, fechas y duraciones en estilo español.
"""
from decimal import Decimal, InvalidOperation
from datetime import date, datetime, timezone
from typing import Union, Optional


def iso(value: Union[date, datetime, None]) -> Optional[str]:
    """Serialize a date/datetime to ISO 8601 for JSON responses."""
    if value is None:
        return None
    return value.isoformat()


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return value as an aware UTC datetime; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp coming from the client.

    Accepts datetime objects and the trailing 'Z' that browsers emit with
    toISOString(). The result is always aware UTC; strings without an offset
    are read as UTC.

    Raises:
        ValueError: if the string is not a valid timestamp.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str):
        raise ValueError(f'Fecha inválida: {value!r}')
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    return as_utc(datetime.fromisoformat(text))


def num_es(value: Union[int, float, Decimal, str, None], decimals: Optional[int] = None) -> str:
    """
    Formatea un número en estilo español:
    - Separador de miles: punto (.)
    - Separador decimal: coma (,)
    - Si no tiene decimales significativos, no los muestra

    Examples:
        num_es(1500) -> "1.500"
        num_es(1500.5) -> "1.500,5"
        num_es(185.00) -> "185"
        num_es(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    try:
        if isinstance(value, str):
            value = value.replace(",", ".")
        num = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    if num == 0:
        return "0"

    if decimals is not None:
        num = num.quantize(Decimal(10) ** -decimals)

    num_str = f"{num:f}"

    if '.' in num_str:
        integer_part, decimal_part = num_str.split('.')
        if decimals is None:
            decimal_part = decimal_part.rstrip('0')
    else:
        integer_part = num_str
        decimal_part = ""

    if integer_part.startswith('-'):
        sign_str = '-'
        integer_part = integer_part[1:]
    else:
        sign_str = ''

    # Agrupar de a 3 desde la derecha
    reversed_int = integer_part[::-1]
    groups = [reversed_int[i:i+3] for i in range(0, len(reversed_int), 3)]
    integer_formatted = '.'.join(groups)[::-1]

    if decimal_part:
        return f"{sign_str}{integer_formatted},{decimal_part}"
    return f"{sign_str}{integer_formatted}"


def money_es(value: Union[int, float, Decimal, str, None]) -> str:
    """
    Formatea un importe con exactamente 2 decimales y símbolo de euro.

    Examples:
        money_es(1500) -> "1.500,00 €"
        money_es(Decimal('12.5')) -> "12,50 €"
    """
    if value is None or value == "":
        return "-"
    try:
        num = Decimal(str(value).replace(",", ".")).quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError, TypeError):
        return "-"
    return f"{num_es(num, decimals=2)} €"


def date_es(value: Union[date, datetime, str, None]) -> str:
    """
    Formatea una fecha: DD/MM/YYYY. Acepta strings ISO (YYYY-MM-DD).

    Examples:
        date_es(date(2026, 1, 12)) -> "12/01/2026"
        date_es("2026-01-12") -> "12/01/2026"
    """
    if value is None or value == "":
        return "N/A"

    if isinstance(value, str):
        try:
            value = date.fromisoformat(value[:10])
        except ValueError:
            return value

    if isinstance(value, datetime):
        value = value.date()

    if not isinstance(value, date):
        return "N/A"

    return value.strftime("%d/%m/%Y")


def datetime_es(value: Union[datetime, None], with_time: bool = True) -> str:
    """
    Formatea un datetime: DD/MM/YYYY HH:MM

    Examples:
        datetime_es(datetime(2026, 1, 12, 15, 30)) -> "12/01/2026 15:30"
    """
    if value is None or not isinstance(value, datetime):
        return "-"

    if with_time:
        return value.strftime("%d/%m/%Y %H:%M")
    return value.strftime("%d/%m/%Y")


def duration_es(minutes: Optional[int]) -> str:
    """
    Formatea una duración en minutos.

    Examples:
        duration_es(45) -> "45m"
        duration_es(135) -> "2h 15m"
    """
    if minutes is None:
        return "-"
    hours, mins = divmod(int(minutes), 60)
    if hours > 0:
        return f"{hours}h {mins}m"
    return f"{mins}m"
