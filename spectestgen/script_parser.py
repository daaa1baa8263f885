"""Turn ``.wast`` scripts into directives through wabt's ``wast2json``.

``wast2json`` writes a JSON command list plus one binary per module next to
it; ``load_wast_json`` reads that output back into directive models.
"""

import json
import logging
import subprocess
import tempfile
from collections.abc import Sequence
from pathlib import Path

from spectestgen.errors import ScriptParseError
from spectestgen.models import (
    Action,
    AssertExhaustion,
    AssertInvalid,
    AssertMalformed,
    AssertReturn,
    AssertReturnArithmeticNaN,
    AssertReturnCanonicalNaN,
    AssertTrap,
    AssertUninstantiable,
    AssertUnlinkable,
    Directive,
    Float32Value,
    Float64Value,
    Int32Value,
    Int64Value,
    ModuleDefinition,
    PerformAction,
    Register,
    Value,
)

logger = logging.getLogger(__name__)

_VALUE_WIDTHS = {"i32": 32, "i64": 64, "f32": 32, "f64": 64}


def build_wast2json_command(
    script_path: Path,
    json_path: Path,
    wast2json_bin: str = "wast2json",
    extra_args: Sequence[str] = (),
) -> list[str]:
    """Construct the ``wast2json`` command for a script.

    Args:
        script_path: Script to convert.
        json_path: Destination of the JSON command list.
        wast2json_bin: Executable name or path.
        extra_args: Additional flags, such as feature toggles.

    Returns:
        List of command arguments.
    """
    return [wast2json_bin, str(script_path), "-o", str(json_path), *extra_args]


def parse_wast(
    source: bytes,
    name: str,
    wast2json_bin: str = "wast2json",
    extra_args: Sequence[str] = (),
    timeout: int = 60,
) -> list[Directive]:
    """Parse script source into an ordered directive list.

    Args:
        source: Raw script bytes.
        name: Script file name, used in messages and for the temporary copy.
        wast2json_bin: Executable name or path.
        extra_args: Additional ``wast2json`` flags.
        timeout: Subprocess timeout in seconds.

    Returns:
        Directives in script order.
    """
    with tempfile.TemporaryDirectory() as tmp:
        script_path = Path(tmp) / Path(name).name
        script_path.write_bytes(source)
        json_path = Path(tmp) / f"{script_path.stem}.json"
        cmd = build_wast2json_command(script_path, json_path, wast2json_bin, extra_args)
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, encoding="utf-8", timeout=timeout
            )
        except subprocess.TimeoutExpired as exc:
            raise ScriptParseError(f"{name}: {wast2json_bin} timed out after {timeout}s") from exc
        except UnicodeDecodeError as exc:
            raise ScriptParseError(f"{name}: {wast2json_bin} output is not UTF-8: {exc}") from exc
        except FileNotFoundError as exc:
            raise ScriptParseError(f"Script parser binary not found: {wast2json_bin}") from exc
        if result.returncode != 0:
            raise ScriptParseError(
                f"{name}: script is malformed: {result.stderr.strip() or result.returncode}"
            )
        directives = load_wast_json(json_path)
    logger.debug("Parsed %s: %d directives", name, len(directives))
    return directives


def load_wast_json(json_path: Path) -> list[Directive]:
    """Load a ``wast2json`` command list and the module files it references.

    Args:
        json_path: JSON file produced by ``wast2json``.

    Returns:
        Directives in script order.
    """
    try:
        data = json.loads(json_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ScriptParseError(f"Can't read command list {json_path}: {exc}") from exc
    commands = data.get("commands") if isinstance(data, dict) else None
    if not isinstance(commands, list):
        raise ScriptParseError(f"{json_path} has no command list")
    return [parse_command(raw, json_path.parent) for raw in commands]


def parse_value(raw: dict) -> Value:
    """Convert a JSON value into a typed value.

    Integers arrive as unsigned decimal strings and floats as the decimal
    form of their bit pattern.

    Args:
        raw: Mapping with ``type`` and ``value`` keys.

    Returns:
        Typed value.
    """
    kind = raw.get("type")
    width = _VALUE_WIDTHS.get(kind)
    if width is None:
        raise ScriptParseError(f"Unsupported value type: {kind!r}")
    try:
        number = int(raw.get("value"))
    except (TypeError, ValueError) as exc:
        raise ScriptParseError(f"Invalid {kind} value: {raw.get('value')!r}") from exc
    if not -(1 << (width - 1)) <= number < (1 << width):
        raise ScriptParseError(f"{kind} value out of range: {number}")
    if kind == "i32":
        return Int32Value(value=_to_signed(number, width))
    if kind == "i64":
        return Int64Value(value=_to_signed(number, width))
    if number < 0:
        raise ScriptParseError(f"{kind} bit pattern can't be negative: {number}")
    if kind == "f32":
        return Float32Value(bits=number)
    return Float64Value(bits=number)


def _to_signed(number: int, width: int) -> int:
    if number >= 1 << (width - 1):
        return number - (1 << width)
    return number


def parse_action(raw: dict) -> Action:
    """Convert a JSON action into an ``Action``."""
    kind = raw.get("type")
    if kind not in ("invoke", "get"):
        raise ScriptParseError(f"Unsupported action type: {kind!r}")
    return Action(
        kind=kind,
        module=raw.get("module"),
        field=raw["field"],
        args=[parse_value(arg) for arg in raw.get("args", [])],
    )


def _read_module(raw: dict, base_dir: Path) -> bytes:
    path = base_dir / raw["filename"]
    try:
        return path.read_bytes()
    except OSError as exc:
        raise ScriptParseError(f"Can't read module file {path}: {exc}") from exc


def _nan_expectation(expected: list) -> tuple[str, str] | None:
    """Return (nan kind, type) when the first expected value is a NaN pattern."""
    if not expected:
        return None
    first = expected[0]
    value = first.get("value")
    if value in ("nan:canonical", "nan:arithmetic"):
        return value, first.get("type")
    return None


def parse_command(raw: dict, base_dir: Path) -> Directive:
    """Convert one JSON command into a directive.

    Args:
        raw: JSON command.
        base_dir: Directory holding the module files the command references.

    Returns:
        Directive for the command.
    """
    try:
        return _parse_command(raw, base_dir)
    except ScriptParseError:
        raise
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise ScriptParseError(
            f"Invalid {raw.get('type', 'unknown')!r} command at line {raw.get('line')}: {exc}"
        ) from exc


def _parse_command(raw: dict, base_dir: Path) -> Directive:
    line = raw["line"]
    message = raw.get("text", "")
    match raw["type"]:
        case "module":
            return ModuleDefinition(
                line=line, module=_read_module(raw, base_dir), name=raw.get("name")
            )
        case "assert_return":
            action = parse_action(raw["action"])
            expected = raw.get("expected", [])
            nan = _nan_expectation(expected)
            if nan is None:
                return AssertReturn(
                    line=line,
                    action=action,
                    expected=[parse_value(value) for value in expected],
                )
            nan_kind, expected_type = nan
            if nan_kind == "nan:canonical":
                return AssertReturnCanonicalNaN(
                    line=line, action=action, expected_type=expected_type
                )
            return AssertReturnArithmeticNaN(
                line=line, action=action, expected_type=expected_type
            )
        case "assert_return_canonical_nan":
            return AssertReturnCanonicalNaN(line=line, action=parse_action(raw["action"]))
        case "assert_return_arithmetic_nan":
            return AssertReturnArithmeticNaN(line=line, action=parse_action(raw["action"]))
        case "assert_trap":
            return AssertTrap(line=line, action=parse_action(raw["action"]), message=message)
        case "assert_exhaustion":
            return AssertExhaustion(
                line=line, action=parse_action(raw["action"]), message=message
            )
        case "assert_invalid":
            return AssertInvalid(
                line=line, module=_read_module(raw, base_dir), message=message
            )
        case "assert_malformed":
            return AssertMalformed(
                line=line, module=_read_module(raw, base_dir), message=message
            )
        case "assert_uninstantiable":
            return AssertUninstantiable(
                line=line, module=_read_module(raw, base_dir), message=message
            )
        case "assert_unlinkable":
            return AssertUnlinkable(
                line=line, module=_read_module(raw, base_dir), message=message
            )
        case "register":
            return Register(line=line, name=raw.get("name"), as_name=raw["as"])
        case "action":
            return PerformAction(line=line, action=parse_action(raw["action"]))
        case other:
            raise ScriptParseError(f"Unsupported command type {other!r} at line {line}")
