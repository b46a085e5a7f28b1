import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from .config import settings


_RUT_JUNK = re.compile(r"[^0-9kK]")


def clean_rut(rut: str) -> str:
    """Strip a RUT down to its digits and check character (``K`` uppercased)."""
    return _RUT_JUNK.sub("", rut or "").upper()


def format_rut(rut: str) -> str:
    """
    Format a RUT as ``12.345.678-9``.

    Anything that is not a digit or ``k``/``K`` is dropped first, so the
    function is safe to apply on every keystroke of a partially typed value.
    Inputs shorter than two characters are returned cleaned.
    """
    clean = clean_rut(rut)
    if len(clean) < 2:
        return clean
    body, dv = clean[:-1], clean[-1]
    groups = []
    while body:
        groups.insert(0, body[-3:])
        body = body[:-3]
    return f"{'.'.join(groups)}-{dv}"


def rut_to_email(rut: str) -> str:
    # Identities are addressed by RUT only; the backend needs an email.
    return f"{clean_rut(rut).lower()}@{settings.login_domain}"


def format_currency(amount: Union[Decimal, int, float, str]) -> str:
    """Chilean pesos: ``$1.234.567``, no decimals, leading minus for negatives."""
    value = Decimal(str(amount)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    digits = f"{abs(int(value)):,}".replace(",", ".")
    return f"{sign}${digits}"
