"""Source parsing boundary for the instrumenter."""

import ast

from covguard.core.errors import ParseError


def parse(source: str, path: str) -> ast.Module:
    """Parse module source into an AST.

    Raises:
        ParseError: If the source is not valid Python.
    """
    try:
        return ast.parse(source, filename=path, type_comments=False)
    except (SyntaxError, ValueError) as e:
        raise ParseError.from_syntax_error(path, e) from e
