"""Georgian tax identification number (TIN) helpers"""

import re

_TIN_PATTERN = re.compile(r"^(\d{9}|\d{11})$")
_SEPARATORS = re.compile(r"[\s\-_.]+")


def normalize_tin(value: str) -> str:
    """Strip whitespace and common separators"""
    return _SEPARATORS.sub("", value or "")


def looks_like_tin(value: str) -> bool:
    """9 digits = company, 11 digits = individual"""
    if not value or not value.strip():
        return False
    return bool(_TIN_PATTERN.match(normalize_tin(value)))
