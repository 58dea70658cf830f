"""
Validation utilities
"""
import re
from decimal import Decimal, InvalidOperation


def normalize_decimal_input(value: str) -> str:
    """
    Normalizar valor digitado: trocar vírgula por ponto

    Example:
        >>> normalize_decimal_input("100,50")
        "100.50"
    """
    return value.strip().replace(",", ".")


def validate_decimal_amount(value: str, max_decimal_places: int = 2) -> tuple[bool, str | None]:
    """
    Validate a money amount typed by the user.

    Returns:
        (is_valid, error_message)

    Example:
        >>> validate_decimal_amount("100.50")
        (True, None)
        >>> validate_decimal_amount("100.505")
        (False, "Máximo de 2 casas decimais")
    """
    normalized = normalize_decimal_input(value)

    try:
        Decimal(normalized)
    except (InvalidOperation, ValueError):
        return False, "Valor inválido"

    pattern = rf"^-?\d+(\.\d{{1,{max_decimal_places}}})?$"
    if not re.match(pattern, normalized):
        return False, f"Máximo de {max_decimal_places} casas decimais"

    return True, None


def validate_and_normalize_amount(value: str, max_decimal_places: int = 2) -> str:
    """
    Validate and normalize an amount (raises on error)

    Raises:
        ValueError: if validation fails
    """
    is_valid, error = validate_decimal_amount(value, max_decimal_places)
    if not is_valid:
        raise ValueError(error)

    return normalize_decimal_input(value)


def only_digits(value: str | None) -> str:
    return re.sub(r"\D", "", value or "")


def _cpf_check_digit(digits: str) -> int:
    weight = len(digits) + 1
    total = sum(int(d) * (weight - i) for i, d in enumerate(digits))
    rest = (total * 10) % 11
    return 0 if rest == 10 else rest


def is_valid_cpf(value: str) -> bool:
    """CPF: 11 digits, two mod-11 check digits, not all-equal."""
    digits = only_digits(value)
    if len(digits) != 11 or digits == digits[0] * 11:
        return False
    first = _cpf_check_digit(digits[:9])
    second = _cpf_check_digit(digits[:10])
    return digits[9:] == f"{first}{second}"


def _cnpj_check_digit(digits: str) -> int:
    weights = [6, 5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2][-len(digits):]
    total = sum(int(d) * w for d, w in zip(digits, weights))
    rest = total % 11
    return 0 if rest < 2 else 11 - rest


def is_valid_cnpj(value: str) -> bool:
    """CNPJ: 14 digits, two mod-11 check digits, not all-equal."""
    digits = only_digits(value)
    if len(digits) != 14 or digits == digits[0] * 14:
        return False
    first = _cnpj_check_digit(digits[:12])
    second = _cnpj_check_digit(digits[:13])
    return digits[12:] == f"{first}{second}"


def validate_cpf_cnpj(value: str) -> str:
    """
    Validate a CPF or CNPJ (formatted or not) and return digits only.

    Raises:
        ValueError: if the document cannot be parsed or a check digit fails

    Example:
        >>> validate_cpf_cnpj("529.982.247-25")
        "52998224725"
    """
    digits = only_digits(value)
    if len(digits) == 11:
        if not is_valid_cpf(digits):
            raise ValueError("CPF inválido")
    elif len(digits) == 14:
        if not is_valid_cnpj(digits):
            raise ValueError("CNPJ inválido")
    else:
        raise ValueError("CPF/CNPJ deve ter 11 ou 14 dígitos")
    return digits
