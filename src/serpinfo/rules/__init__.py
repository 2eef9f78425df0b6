"""
SERPINFO rule documents: commands, data model, parsing and compilation.
"""

from .compiler import CompiledSerpInfo, CompileResult, compile_serp_info
from .models import ResultDescription, SerpDescription, SerpInfo
from .parser import ParseResult, parse

__all__ = [
    "CompileResult",
    "CompiledSerpInfo",
    "ParseResult",
    "ResultDescription",
    "SerpDescription",
    "SerpInfo",
    "compile_serp_info",
    "parse",
]
