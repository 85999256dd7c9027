"""Self-invoking envelope around injected payload code.

The payload is carried as a string literal and compiled into its own namespace by
a function that is defined and immediately called. That keeps the payload's
module-level names out of the execution context's globals while its ``global``
statements keep ordinary module semantics. Reading the code back is a structural
match over the envelope's syntax tree, so re-sending code to the model never
nests envelopes.
"""
import ast


ENVELOPE_NAME = "__livecode_payload__"

_TEMPLATE = '''\
def {name}(source):
    namespace = new_namespace()
    exec(compile(source, "<payload>", "exec"), namespace)
    return run_entry_point(namespace)


{name}({literal})
'''


def wrap(code: str) -> str:
    return _TEMPLATE.format(name=ENVELOPE_NAME, literal=repr(code))


def unwrap(module: str) -> str | None:
    """Return the payload carried by an envelope, or None if module is not one."""
    try:
        tree = ast.parse(module)
    except (SyntaxError, ValueError):
        return None

    if len(tree.body) != 2:
        return None
    definition, invocation = tree.body
    if not isinstance(definition, ast.FunctionDef) or definition.name != ENVELOPE_NAME:
        return None
    if not isinstance(invocation, ast.Expr) or not isinstance(invocation.value, ast.Call):
        return None

    call = invocation.value
    if not isinstance(call.func, ast.Name) or call.func.id != ENVELOPE_NAME:
        return None
    if len(call.args) != 1 or call.keywords:
        return None
    literal = call.args[0]
    if not isinstance(literal, ast.Constant) or not isinstance(literal.value, str):
        return None
    return literal.value
