import ast
import re

from livecode.errors import InvalidOutput


MIN_CODE_LENGTH = 100

_FENCE_OPEN = re.compile(r"^```[\w.+#-]*[ \t]*(?:\r?\n|$)")
_FENCE_CLOSE = re.compile(r"(?:^|\r?\n)[ \t]*```[ \t]*$")


def strip_fences(text: str) -> str:
    """Remove a leading ```lang (or bare ```) fence and a trailing fence, then trim."""
    code = text.strip()
    code = _FENCE_OPEN.sub("", code, count=1)
    code = _FENCE_CLOSE.sub("", code, count=1)
    return code.strip()


def validate_code(code: str, min_length: int = MIN_CODE_LENGTH) -> str:
    """Parse-only gate: plausible length and syntactically valid Python.

    Nothing is executed here; the code only runs once it is injected into a fresh
    execution context.
    """
    if not code or len(code) < min_length:
        raise InvalidOutput("API returned invalid or incomplete code")
    try:
        ast.parse(code, filename="<generated>", mode="exec")
    except (SyntaxError, ValueError) as e:
        raise InvalidOutput(f"API returned invalid Python: {e}") from e
    return code
