"""Pydantic v2 models for script directives and generation results."""

from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

I32_MIN = -(2**31)
I32_MAX = 2**31 - 1
I64_MIN = -(2**63)
I64_MAX = 2**63 - 1


class Int32Value(BaseModel):
    """A signed 32-bit integer argument or result."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["i32"] = "i32"
    value: int = Field(ge=I32_MIN, le=I32_MAX)


class Int64Value(BaseModel):
    """A signed 64-bit integer argument or result."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["i64"] = "i64"
    value: int = Field(ge=I64_MIN, le=I64_MAX)


class Float32Value(BaseModel):
    """A 32-bit float stored as its raw bit pattern."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["f32"] = "f32"
    bits: int = Field(ge=0, le=0xFFFF_FFFF)


class Float64Value(BaseModel):
    """A 64-bit float stored as its raw bit pattern."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["f64"] = "f64"
    bits: int = Field(ge=0, le=0xFFFF_FFFF_FFFF_FFFF)


Value = Annotated[
    Int32Value | Int64Value | Float32Value | Float64Value,
    Field(discriminator="kind"),
]

ValueType = Literal["i32", "i64", "f32", "f64"]


class Action(BaseModel):
    """An invocation (or global read) against a module export."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["invoke", "get"] = "invoke"
    module: str | None = None
    field: str
    args: list[Value] = Field(default_factory=list)


class _Directive(BaseModel):
    model_config = ConfigDict(frozen=True)

    line: int = Field(ge=0)


class ModuleDefinition(_Directive):
    kind: Literal["module"] = "module"
    module: bytes
    name: str | None = None


class AssertReturn(_Directive):
    kind: Literal["assert_return"] = "assert_return"
    action: Action
    expected: list[Value] = Field(default_factory=list)


class AssertReturnCanonicalNaN(_Directive):
    kind: Literal["assert_return_canonical_nan"] = "assert_return_canonical_nan"
    action: Action
    expected_type: ValueType | None = None


class AssertReturnArithmeticNaN(_Directive):
    kind: Literal["assert_return_arithmetic_nan"] = "assert_return_arithmetic_nan"
    action: Action
    expected_type: ValueType | None = None


class AssertTrap(_Directive):
    kind: Literal["assert_trap"] = "assert_trap"
    action: Action
    message: str = ""


class AssertInvalid(_Directive):
    kind: Literal["assert_invalid"] = "assert_invalid"
    module: bytes
    message: str = ""


class AssertMalformed(_Directive):
    kind: Literal["assert_malformed"] = "assert_malformed"
    module: bytes
    message: str = ""


class AssertUninstantiable(_Directive):
    kind: Literal["assert_uninstantiable"] = "assert_uninstantiable"
    module: bytes
    message: str = ""


class AssertExhaustion(_Directive):
    kind: Literal["assert_exhaustion"] = "assert_exhaustion"
    action: Action
    message: str = ""


class AssertUnlinkable(_Directive):
    kind: Literal["assert_unlinkable"] = "assert_unlinkable"
    module: bytes
    message: str = ""


class Register(_Directive):
    kind: Literal["register"] = "register"
    name: str | None = None
    as_name: str


class PerformAction(_Directive):
    kind: Literal["action"] = "action"
    action: Action


Directive = Annotated[
    ModuleDefinition
    | AssertReturn
    | AssertReturnCanonicalNaN
    | AssertReturnArithmeticNaN
    | AssertTrap
    | AssertInvalid
    | AssertMalformed
    | AssertUninstantiable
    | AssertExhaustion
    | AssertUnlinkable
    | Register
    | PerformAction,
    Field(discriminator="kind"),
]


class GeneratorState(BaseModel):
    """Mutable traversal state owned by a single generator run."""

    last_module: int = 0
    last_line: int = 0
    command_no: int = 0
    module_calls: dict[int, list[str]] = Field(default_factory=dict)
    buffer: list[str] = Field(default_factory=list)


class GeneratedArtifact(BaseModel):
    """Finished test source for one script."""

    filename: str
    source: str
    command_count: int


class FileResult(BaseModel):
    """Outcome of generating and writing one test module."""

    script: Path
    module_name: str
    output_path: Path
    command_count: int
    written: bool
    gated: bool


class SuiteResult(BaseModel):
    """Outcome of a full suite build, including the manifest."""

    files: list[FileResult]
    manifest_path: Path
    manifest_written: bool


class SuiteSpec(BaseModel):
    """An ordered list of scripts to turn into test modules, loaded from YAML."""

    spectests_dir: Path = Path("spectests")
    output_dir: Path = Path("generated")
    runtime_module: str = "_common"
    tests: list[str] = Field(min_length=1)
