"""solhorn front end — lexer, parser and resolver for a Solidity subset."""

from solhorn.frontend.lexer import Lexer, Token, TokenType, tokenize
from solhorn.frontend.parser import Parser, parse
from solhorn.frontend.resolver import Resolver, resolve
from solhorn.ast_nodes import SourceUnit


def analyze_source(source: str, filename: str = "<stdin>") -> SourceUnit:
    """Parse and resolve `source`. Raises CompileError."""
    return resolve(parse(source, filename))
