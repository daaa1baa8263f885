import math
import struct
import sys
import types
from dataclasses import dataclass

import pytest

from spectestgen.emitters import RUNTIME_IMPORTS
from spectestgen.models import Action, Int32Value, ModuleDefinition

WASM_HEADER = b"\x00asm\x01\x00\x00\x00"


@pytest.fixture
def fake_translate():
    """Provide a translator that renders any binary as a small module text.

    Returns:
        Callable mapping module bytes to text containing quotes and escapes.
    """

    def translate(binary: bytes) -> str:
        return (
            f"(module ;; {len(binary)} bytes\n"
            '  (data "\\00\\01")\n'
            '  (func (export "f")))\n'
        )

    return translate


@pytest.fixture
def module_directive():
    """Provide a factory for module definitions at a given line.

    Returns:
        Callable building a ModuleDefinition.
    """

    def build(line: int) -> ModuleDefinition:
        return ModuleDefinition(line=line, module=WASM_HEADER)

    return build


@pytest.fixture
def invoke():
    """Provide a factory for invoke actions with i32 arguments.

    Returns:
        Callable building an Action.
    """

    def build(field: str, *args: int) -> Action:
        return Action(field=field, args=[Int32Value(value=arg) for arg in args])

    return build


class _CompileError(Exception):
    pass


class _InstantiationError(Exception):
    pass


class _Trap(Exception):
    pass


@dataclass
class _FunctionExport:
    index: int


class _Instance:
    def __init__(self):
        self.counter = 0
        self.log: list[str] = []

    def start(self):
        self.log.append("start")


def _inc(instance):
    instance.log.append("inc")
    instance.counter += 1


def _get(instance):
    instance.log.append("get")
    return instance.counter


def _add(a, b, instance):
    instance.log.append("add")
    return a + b


def _div(a, b, instance):
    instance.log.append("div")
    return a // b


_FUNCTIONS = [_inc, _get, _add, _div]


@pytest.fixture
def fake_runtime(monkeypatch):
    """Install an in-memory runtime helper module named ``fake_runtime``.

    Exports ``inc``, ``get``, ``add`` and ``div``; ``div`` by zero traps.
    Every created instance is appended to ``fake_runtime.instances``.

    Args:
        monkeypatch: Pytest monkeypatch fixture.

    Returns:
        The installed module.
    """
    runtime = types.ModuleType("fake_runtime")
    runtime.instances = []

    def wat2wasm(text):
        if "(module" not in text:
            raise _CompileError("not a module")
        return WASM_HEADER

    def compile_module(binary):
        if not binary.startswith(WASM_HEADER):
            raise _CompileError("bad magic")
        return object()

    def instantiate(binary, imports, memory):
        instance = _Instance()
        runtime.instances.append(instance)
        exports = {
            function.__name__.lstrip("_"): _FunctionExport(index)
            for index, function in enumerate(_FUNCTIONS)
        }
        return types.SimpleNamespace(
            module=types.SimpleNamespace(exports=exports), instance=instance
        )

    def call_protected(function, *args):
        try:
            return function(*args)
        except ZeroDivisionError as exc:
            raise _Trap("integer divide by zero") from exc

    values = {
        "CompileError": _CompileError,
        "InstantiationError": _InstantiationError,
        "Trap": _Trap,
        "FunctionExport": _FunctionExport,
        "Instance": _Instance,
        "call_protected": call_protected,
        "compile_module": compile_module,
        "instantiate": instantiate,
        "get_instance_function": lambda instance, index: _FUNCTIONS[index],
        "spectest_import_object": dict,
        "wat2wasm": wat2wasm,
        "i32": int,
        "i64": int,
        "f32": float,
        "f64": float,
        "f32_from_bits": lambda bits: struct.unpack("<f", struct.pack("<I", bits))[0],
        "f64_from_bits": lambda bits: struct.unpack("<d", struct.pack("<Q", bits))[0],
        "F32_INFINITY": math.inf,
        "F32_NEG_INFINITY": -math.inf,
        "F64_INFINITY": math.inf,
        "F64_NEG_INFINITY": -math.inf,
    }
    assert set(values) == set(RUNTIME_IMPORTS)
    for name, value in values.items():
        setattr(runtime, name, value)
    monkeypatch.setitem(sys.modules, "fake_runtime", runtime)
    return runtime
