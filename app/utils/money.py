"""
Unified money helpers for the whole project.

Usage:
    from app.utils.money import format_money, to_money

    format_money(15000)            -> "R$ 15.000,00"
    format_money("1200.5", "USD")  -> "US$ 1.200,50"
    to_money("10.005")             -> Decimal("10.01")
"""
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")

# Prefixo por moeda (ISO); BRL é a moeda padrão
_CURRENCY_PREFIX = {
    "BRL": "R$",
    "USD": "US$",
    "EUR": "€",
}


def currency_label(code: str) -> str:
    """Prefixo legível da moeda."""
    return _CURRENCY_PREFIX.get(code, code)


def to_money(value) -> Decimal:
    """Coerce int / float / str / Decimal to a Decimal quantized to cents."""
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, float):
        d = Decimal(str(value))
    else:
        d = Decimal(value)
    return d.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(amount, currency: str = "BRL") -> str:
    """
    Format an amount pt-BR style: dot thousands separator, comma decimals.

    Args:
        amount: number (int / float / Decimal / str)
        currency: ISO currency code

    Returns:
        "R$ 1.234,56"
    """
    value = to_money(amount)
    sign = "-" if value < 0 else ""
    formatted = f"{abs(value):,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{sign}{currency_label(currency)} {formatted}"
