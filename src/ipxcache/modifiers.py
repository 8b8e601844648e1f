"""Modifier-string parsing.

``w_200,h_100`` → ``{"w": "200", "h": "100"}``. Tokens are separated by
``,`` or ``&``; name and value by the first ``_``, ``:`` or ``=``. Extra
``_`` separated arguments stay in the value. A bare token is a flag and maps
to ``True``. ``_`` alone means "no modifiers".
"""

from __future__ import annotations

import re

NO_MODIFIERS = "_"

_TOKEN_SPLIT = re.compile(r"[,&]")
_NAME_VALUE_SPLIT = re.compile(r"[_:=]")


def parse_modifiers(raw: str) -> dict[str, str | bool]:
    """Parse a modifier token into an ordered name → value mapping.

    Later duplicates override earlier ones but keep the first position.
    """
    result: dict[str, str | bool] = {}
    if not raw or raw == NO_MODIFIERS:
        return result

    for token in _TOKEN_SPLIT.split(raw):
        if not token:
            continue
        parts = _NAME_VALUE_SPLIT.split(token, maxsplit=1)
        name = parts[0].strip()
        if not name:
            continue
        if len(parts) == 1 or parts[1] == "":
            result[name] = True
        else:
            result[name] = parts[1]
    return result


def format_modifiers(modifiers: dict[str, str | bool]) -> str:
    """Inverse of :func:`parse_modifiers` for canonical display."""
    if not modifiers:
        return NO_MODIFIERS
    tokens = [name if value is True else f"{name}_{value}" for name, value in modifiers.items()]
    return ",".join(tokens)
