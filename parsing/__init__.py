"""Parsers for name list structure and localisation sources."""

from __future__ import annotations

from core.errors import ConflictingWeightError, ParseError

from .dsl_parser import Token, parse_namelist, tokenize
from .localisation_parser import parse_localisation

__all__ = [
    "ParseError",
    "ConflictingWeightError",
    "Token",
    "parse_namelist",
    "parse_localisation",
    "tokenize",
]
