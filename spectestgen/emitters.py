"""Pure text emitters for generated pytest modules.

Every function here maps its inputs to a source fragment without touching
generator state, so fragments can be checked against golden text directly.
"""

from spectestgen.errors import GenerationError
from spectestgen.models import Action, Value
from spectestgen.values import is_nan, literal_of, type_of

BANNER = (
    "# Python test module autogenerated by spectestgen (spectestgen/generator.py).\n"
    "# Please do NOT modify it by hand, as it will be reset on next generation.\n"
)

# Names the generated modules import from the hand-written runtime helper.
RUNTIME_IMPORTS = (
    "CompileError",
    "F32_INFINITY",
    "F32_NEG_INFINITY",
    "F64_INFINITY",
    "F64_NEG_INFINITY",
    "FunctionExport",
    "Instance",
    "InstantiationError",
    "Trap",
    "call_protected",
    "compile_module",
    "f32",
    "f32_from_bits",
    "f64",
    "f64_from_bits",
    "get_instance_function",
    "i32",
    "i64",
    "instantiate",
    "spectest_import_object",
    "wat2wasm",
)

# Conversions whose result width differs from their argument width.
NAN_CONVERSION_RESULT_TYPES = {
    "f64.promote_f32": "f64",
    "f32.demote_f64": "f32",
    "f32.promote_f64": "f32",
}


def render_header(filename: str, runtime_module: str) -> str:
    """Render the banner and imports that open every generated module.

    Args:
        filename: Logical name of the source script.
        runtime_module: Import path of the runtime helper module.

    Returns:
        Header source text.
    """
    imports = "".join(f"    {name},\n" for name in RUNTIME_IMPORTS)
    return (
        f"{BANNER}"
        f"# Test based on spectests/{filename}\n"
        "# ruff: noqa\n"
        "import math\n"
        "from collections.abc import Callable\n"
        "\n"
        "import pytest\n"
        "\n"
        f"from {runtime_module} import (\n"
        f"{imports}"
        ")\n"
    )


def render_line_marker(line: int) -> str:
    return f"\n# Line {line}\n"


def command_name(command_no: int, line: int) -> str:
    """Build the per-file unique identifier for a directive."""
    return f"c{command_no}_l{line}"


def _embed_text(text: str) -> str:
    escaped = text.rstrip("\n").replace("\\", "\\\\").replace('"', '\\"')
    # Indent continuation lines to the function body.
    return escaped.replace("\n", "\n    ")


def render_module_fixture(index: int, wat_text: str) -> str:
    """Render ``create_module_N`` which builds a fresh instance of a module.

    Args:
        index: Module index within the script.
        wat_text: Text rendering of the module binary.

    Returns:
        Fixture function source.
    """
    return (
        f"def create_module_{index}():\n"
        f'    module_str = """{_embed_text(wat_text)}"""\n'
        "    try:\n"
        "        wasm_binary = wat2wasm(module_str)\n"
        "    except CompileError as exc:\n"
        '        pytest.fail(f"WAST not valid or malformed: {exc}")\n'
        "    try:\n"
        "        return instantiate(wasm_binary, spectest_import_object(), None)\n"
        "    except (CompileError, InstantiationError) as exc:\n"
        '        pytest.fail(f"WASM can\'t be instantiated: {exc}")\n'
    )


def render_start_call(index: int) -> tuple[str, str]:
    """Render the start-invocation helper for a module.

    Returns:
        Tuple of (helper name, helper source).
    """
    name = f"start_module_{index}"
    source = (
        f"\n\ndef {name}(result_object):\n"
        "    result_object.instance.start()\n"
    )
    return name, source


def return_assertion(expected: list[Value]) -> tuple[str, list[str]]:
    """Build the return annotation and assertions for an expected result.

    NaN expectations compare NaN-ness and sign only, since payload equality
    is not required of the engine.

    Args:
        expected: Expected results; only the first one is checked.

    Returns:
        Tuple of (return type token, assertion lines).
    """
    if not expected:
        return "None", ["assert result is None"]
    first = expected[0]
    literal = literal_of(first)
    if is_nan(first):
        return type_of(first), [
            "assert math.isnan(result)",
            f"assert math.copysign(1.0, result) == math.copysign(1.0, {literal})",
        ]
    return type_of(first), [f"assert result == {literal}"]


def arithmetic_nan_return_type(action: Action, expected_type: str | None) -> str:
    """Infer the result type of a NaN-producing call from its first argument.

    Args:
        action: Invocation being checked.
        expected_type: Declared result type, used when there are no arguments.

    Returns:
        Width type token.
    """
    if action.args:
        return type_of(action.args[0])
    if expected_type is not None:
        return expected_type
    raise GenerationError(
        f"Cannot infer result type of {action.field!r}: no arguments and no declared type"
    )


def canonical_nan_return_type(action: Action, expected_type: str | None) -> str:
    """Like ``arithmetic_nan_return_type`` but aware of width conversions."""
    override = NAN_CONVERSION_RESULT_TYPES.get(action.field)
    if override is not None:
        return override
    return arithmetic_nan_return_type(action, expected_type)


def render_invoke(
    func_name: str,
    action: Action,
    return_type: str,
    assertions: list[str],
) -> str:
    """Render a helper that resolves an export, calls it and checks the result.

    Args:
        func_name: Name of the generated helper.
        action: Invocation to perform.
        return_type: Return annotation token (``None`` for no result).
        assertions: Assertion lines applied to ``result``; empty for none.

    Returns:
        Helper function source.
    """
    arg_types = [type_of(arg) for arg in action.args] + ["Instance"]
    arg_values = [literal_of(arg) for arg in action.args] + ["result_object.instance"]
    not_found = f"Function {action.field!r} not found"
    call = f"invoke_fn({', '.join(arg_values)})"
    lines = [
        f"def {func_name}(result_object):",
        f'    print("Executing function {func_name}")',
        f"    export = result_object.module.exports.get({action.field!r})",
        "    if not isinstance(export, FunctionExport):",
        f"        pytest.fail({not_found!r})",
        f"    invoke_fn: Callable[[{', '.join(arg_types)}], {return_type}] = "
        "get_instance_function(result_object.instance, export.index)",
    ]
    if assertions:
        lines.append(f"    result = {call}")
        lines.extend(f"    {assertion}" for assertion in assertions)
    else:
        lines.append(f"    {call}")
    return "\n".join(lines) + "\n"


def render_trap_test(name: str, module_index: int, action_fn: str) -> str:
    """Render a standalone test asserting that a call traps.

    The module is instantiated afresh so a trap cannot leak state into the
    module's grouped test.
    """
    return (
        f"\n\ndef test_{name}_assert_trap():\n"
        f"    result_object = create_module_{module_index}()\n"
        "    with pytest.raises(Trap):\n"
        f"        call_protected({action_fn}, result_object)\n"
    )


def render_compile_failure_test(name: str, suffix: str, binary: bytes) -> str:
    """Render a standalone test asserting that a binary does not compile.

    Args:
        name: Directive identifier.
        suffix: ``assert_invalid`` or ``assert_malformed``.
        binary: Raw module bytes.

    Returns:
        Test function source.
    """
    return (
        f"def test_{name}_{suffix}():\n"
        f"    wasm_binary = {binary!r}\n"
        "    with pytest.raises(CompileError):\n"
        "        compile_module(wasm_binary)\n"
    )


def render_module_test(index: int, calls: list[str]) -> str:
    """Render the aggregated test running a module's deferred calls in order.

    Args:
        index: Module index.
        calls: Helper names, in recorded order.

    Returns:
        Test function source, or an empty string when there are no calls.
    """
    if not calls:
        return ""
    body = "".join(f"    {call}(result_object)\n" for call in calls)
    return (
        f"\n\ndef test_module_{index}():\n"
        f"    result_object = create_module_{index}()\n"
        "    # We group the calls together\n"
        f"{body}"
    )
