"""Tests for output writing, the suite build and the manifest."""

import os
import subprocess
import sys
from pathlib import Path

import pytest

from spectestgen.config import Config
from spectestgen.errors import GenerationError
from spectestgen.models import Action, ModuleDefinition, PerformAction, SuiteSpec
from spectestgen.suite import load_suite
from spectestgen.writer import (
    MANIFEST_NAME,
    assemble_manifest,
    build_suite,
    generate_test_file,
    module_name_for,
    write_if_changed,
)

WASM_HEADER = b"\x00asm\x01\x00\x00\x00"


def _sized_parser(sizes: dict[str, int]):
    """Build a parser returning one module plus enough actions per script.

    Args:
        sizes: Directive count per script file name.

    Returns:
        Callable matching the script parser signature.
    """

    def parse(source: bytes, name: str):
        directives = [ModuleDefinition(line=1, module=WASM_HEADER)]
        for line in range(2, sizes[name] + 1):
            directives.append(PerformAction(line=line, action=Action(field="inc")))
        return directives

    return parse


def _exec_manifest(source: str) -> dict:
    namespace: dict = {}
    exec(compile(source, MANIFEST_NAME, "exec"), namespace)
    return namespace


@pytest.fixture
def suite_dir(tmp_path):
    """Create a scripts directory holding two small scripts.

    Args:
        tmp_path: Pytest temporary directory.

    Returns:
        The scripts directory.
    """
    scripts = tmp_path / "spectests"
    scripts.mkdir()
    (scripts / "big.wast").write_text("(module)\n")
    (scripts / "small.wast").write_text("(module)\n")
    return scripts


# --- module names ---


class TestModuleNameFor:
    """Tests for module_name_for."""

    def test_plain_stem(self):
        """Test that names carry pytest's test_ prefix."""
        assert module_name_for(Path("spectests/i32_.wast")) == "test_i32_"

    def test_dashes_become_underscores(self):
        """Test that non-identifier characters are replaced."""
        assert module_name_for(Path("memory-grow.wast")) == "test_memory_grow"

    def test_keywords_and_digits_stay_importable(self):
        """Test that keyword and digit stems still give identifiers."""
        assert module_name_for(Path("if.wast")) == "test_if"
        assert module_name_for(Path("2d.wast")) == "test_2d"

    @pytest.mark.parametrize("stem", ["select", "token", "types", "conftest"])
    def test_stdlib_and_manifest_stems_are_prefixed(self, stem):
        """Test that stems named like stdlib modules or the manifest are prefixed."""
        assert module_name_for(Path(f"{stem}.wast")) == f"test_{stem}"

    def test_reserved_runtime_name(self):
        """Test that the runtime helper's name can't be generated."""
        with pytest.raises(GenerationError, match="reserved name"):
            module_name_for(Path("_common.wast"))

    def test_shipped_suite_names_are_unique_and_collectable(self):
        """Test every script in the shipped suite maps to its own test module."""
        suite = load_suite(Path(__file__).resolve().parent.parent / "spectests.yaml")
        names = [module_name_for(Path(test)) for test in suite.tests]
        assert len(set(names)) == len(names)
        assert all(name.startswith("test_") and name.isidentifier() for name in names)


# --- write_if_changed ---


class TestWriteIfChanged:
    """Tests for write_if_changed."""

    def test_creates_parent_directories(self, tmp_path):
        """Test that missing parents are created."""
        path = tmp_path / "a" / "b" / "out.py"
        assert write_if_changed(path, "x = 1\n") is True
        assert path.read_text() == "x = 1\n"

    def test_same_content_is_not_rewritten(self, tmp_path):
        """Test that identical content leaves the file untouched."""
        path = tmp_path / "out.py"
        write_if_changed(path, "x = 1\n")
        mtime = path.stat().st_mtime_ns
        assert write_if_changed(path, "x = 1\n") is False
        assert path.stat().st_mtime_ns == mtime

    def test_changed_content_is_rewritten(self, tmp_path):
        """Test that different content replaces the file."""
        path = tmp_path / "out.py"
        write_if_changed(path, "x = 1\n")
        assert write_if_changed(path, "x = 2\n") is True
        assert path.read_text() == "x = 2\n"


# --- generate_test_file ---


class TestGenerateTestFile:
    """Tests for generate_test_file."""

    def test_large_script_is_gated(self, suite_dir, tmp_path, fake_translate):
        """Test that scripts above the threshold are flagged for the fast build."""
        parse = _sized_parser({"big.wast": 250})
        result = generate_test_file(
            suite_dir / "big.wast", tmp_path / "out", parse, fake_translate
        )
        assert result.command_count == 250
        assert result.gated is True
        assert result.module_name == "test_big"
        assert result.output_path == tmp_path / "out" / "test_big.py"
        assert result.output_path.read_text().startswith("# Python test module")

    def test_small_script_is_not_gated(self, suite_dir, tmp_path, fake_translate):
        """Test that scripts below the threshold always run."""
        parse = _sized_parser({"small.wast": 50})
        result = generate_test_file(
            suite_dir / "small.wast", tmp_path / "out", parse, fake_translate
        )
        assert result.command_count == 50
        assert result.gated is False

    def test_threshold_is_exclusive(self, suite_dir, tmp_path, fake_translate):
        """Test that a script exactly at the threshold is not gated."""
        parse = _sized_parser({"small.wast": 200})
        result = generate_test_file(
            suite_dir / "small.wast", tmp_path / "out", parse, fake_translate
        )
        assert result.gated is False

    def test_missing_script(self, tmp_path, fake_translate):
        """Test that an unreadable script raises GenerationError."""
        with pytest.raises(GenerationError, match="Can't read script"):
            generate_test_file(
                tmp_path / "gone.wast", tmp_path, _sized_parser({}), fake_translate
            )


# --- manifest ---


class TestManifest:
    """Tests for assemble_manifest and the generated conftest."""

    @pytest.fixture
    def results(self, suite_dir, tmp_path, fake_translate):
        parse = _sized_parser({"big.wast": 250, "small.wast": 50})
        return [
            generate_test_file(suite_dir / name, tmp_path / "out", parse, fake_translate)
            for name in ("big.wast", "small.wast")
        ]

    def test_lists_every_module_in_order(self, results):
        """Test that every generated module is enumerated."""
        namespace = _exec_manifest(assemble_manifest(results))
        assert namespace["GENERATED_TESTS"] == ["test_big.py", "test_small.py"]
        assert namespace["SLOW_TESTS"] == ["test_big.py"]

    def test_fast_build_skips_slow_modules(self, results, monkeypatch):
        """Test that setting the fast-tests variable ignores gated modules."""
        monkeypatch.setenv("FAST_TESTS", "1")
        namespace = _exec_manifest(assemble_manifest(results))
        assert namespace["collect_ignore"] == ["test_big.py"]

    def test_full_build_collects_everything(self, results, monkeypatch):
        """Test that gated modules run when the fast-tests variable is unset."""
        monkeypatch.delenv("FAST_TESTS", raising=False)
        namespace = _exec_manifest(assemble_manifest(results))
        assert namespace["collect_ignore"] == []

    def test_zero_disables_fast_build(self, results, monkeypatch):
        """Test that a value of 0 counts as unset."""
        monkeypatch.setenv("FAST_TESTS", "0")
        namespace = _exec_manifest(assemble_manifest(results))
        assert namespace["collect_ignore"] == []

    def test_custom_variable_name(self, results, monkeypatch):
        """Test that the fast-tests variable name is configurable."""
        monkeypatch.setenv("SPECTESTS_QUICK", "yes")
        namespace = _exec_manifest(assemble_manifest(results, "SPECTESTS_QUICK"))
        assert namespace["collect_ignore"] == ["test_big.py"]


# --- build_suite ---


class TestBuildSuite:
    """Tests for build_suite."""

    def _suite(self, suite_dir, tmp_path, tests=("big.wast", "small.wast")):
        return SuiteSpec(
            spectests_dir=suite_dir, output_dir=tmp_path / "out", tests=list(tests)
        )

    def test_writes_modules_and_manifest(self, suite_dir, tmp_path, fake_translate):
        """Test that a build writes one module per script plus the manifest."""
        suite = self._suite(suite_dir, tmp_path)
        parse = _sized_parser({"big.wast": 250, "small.wast": 50})
        result = build_suite(suite, Config(), parse=parse, translate=fake_translate)
        assert [f.module_name for f in result.files] == ["test_big", "test_small"]
        assert [f.gated for f in result.files] == [True, False]
        assert result.manifest_written is True
        assert result.manifest_path == tmp_path / "out" / "conftest.py"
        assert sorted(p.name for p in (tmp_path / "out").iterdir()) == [
            "conftest.py",
            "test_big.py",
            "test_small.py",
        ]

    def test_rebuild_is_idempotent(self, suite_dir, tmp_path, fake_translate):
        """Test that a second build with the same inputs writes nothing."""
        suite = self._suite(suite_dir, tmp_path)
        parse = _sized_parser({"big.wast": 250, "small.wast": 50})
        first = build_suite(suite, Config(), parse=parse, translate=fake_translate)
        second = build_suite(suite, Config(), parse=parse, translate=fake_translate)
        assert second.manifest_written is False
        assert not any(f.written for f in second.files)
        assert [f.output_path.read_text() for f in first.files] == [
            f.output_path.read_text() for f in second.files
        ]

    def test_threshold_comes_from_config(self, suite_dir, tmp_path, fake_translate):
        """Test that the gating threshold is configurable."""
        suite = self._suite(suite_dir, tmp_path)
        parse = _sized_parser({"big.wast": 250, "small.wast": 50})
        config = Config(slow_test_threshold=10)
        result = build_suite(suite, config, parse=parse, translate=fake_translate)
        assert [f.gated for f in result.files] == [True, True]

    def test_duplicate_module_names(self, suite_dir, tmp_path, fake_translate):
        """Test that scripts colliding on a module name abort before writing."""
        (suite_dir / "a-b.wast").write_text("(module)\n")
        (suite_dir / "a_b.wast").write_text("(module)\n")
        suite = self._suite(suite_dir, tmp_path, tests=("a-b.wast", "a_b.wast"))
        with pytest.raises(GenerationError, match="same module name: test_a_b"):
            build_suite(suite, Config(), parse=_sized_parser({}), translate=fake_translate)
        assert not (tmp_path / "out").exists()

    def test_runtime_module_is_used(self, suite_dir, tmp_path, fake_translate):
        """Test that generated modules import the configured runtime."""
        suite = SuiteSpec(
            spectests_dir=suite_dir,
            output_dir=tmp_path / "out",
            runtime_module="wasm_runtime.helpers",
            tests=["small.wast"],
        )
        parse = _sized_parser({"small.wast": 3})
        result = build_suite(suite, Config(), parse=parse, translate=fake_translate)
        assert "from wasm_runtime.helpers import (" in result.files[0].output_path.read_text()

    def test_stdlib_and_manifest_stems(self, suite_dir, tmp_path, fake_translate):
        """Test that scripts named like stdlib modules or the manifest stay separate."""
        for stem in ("select", "token", "conftest"):
            (suite_dir / f"{stem}.wast").write_text("(module)\n")
        suite = self._suite(
            suite_dir, tmp_path, tests=("select.wast", "token.wast", "conftest.wast")
        )
        parse = _sized_parser({"select.wast": 2, "token.wast": 2, "conftest.wast": 2})
        result = build_suite(suite, Config(), parse=parse, translate=fake_translate)
        assert sorted(p.name for p in (tmp_path / "out").iterdir()) == [
            "conftest.py",
            "test_conftest.py",
            "test_select.py",
            "test_token.py",
        ]
        assert "GENERATED_TESTS" in result.manifest_path.read_text()


# --- running the generated suite ---

RUNTIME_STUB = '''\
import math
import struct
from types import SimpleNamespace


class CompileError(Exception):
    pass


class InstantiationError(Exception):
    pass


class Trap(Exception):
    pass


class FunctionExport:
    def __init__(self, index):
        self.index = index


class Instance:
    def start(self):
        pass


def wat2wasm(text):
    return b"wasm"


def compile_module(binary):
    return binary


def instantiate(binary, imports, memory):
    exports = {"inc": FunctionExport(0)}
    return SimpleNamespace(module=SimpleNamespace(exports=exports), instance=Instance())


def get_instance_function(instance, index):
    return lambda instance: None


def call_protected(function, *args):
    return function(*args)


def spectest_import_object():
    return {}


def f32_from_bits(bits):
    return struct.unpack("<f", struct.pack("<I", bits))[0]


def f64_from_bits(bits):
    return struct.unpack("<d", struct.pack("<Q", bits))[0]


i32 = i64 = int
f32 = f64 = float
F32_INFINITY = F64_INFINITY = math.inf
F32_NEG_INFINITY = F64_NEG_INFINITY = -math.inf
'''


class TestGeneratedSuiteRuns:
    """Tests that run pytest on a built output directory."""

    @pytest.fixture
    def built_suite(self, tmp_path, fake_translate):
        """Build a suite whose script names clash with stdlib and manifest names.

        Args:
            tmp_path: Pytest temporary directory.
            fake_translate: Translator fixture.

        Returns:
            The output directory, holding the runtime helper stub.
        """
        scripts = tmp_path / "spectests"
        scripts.mkdir()
        sizes = {"select.wast": 5, "token.wast": 2, "conftest.wast": 2}
        for name in sizes:
            (scripts / name).write_text("(module)\n")
        suite = SuiteSpec(
            spectests_dir=scripts, output_dir=tmp_path / "out", tests=list(sizes)
        )
        config = Config(slow_test_threshold=3)
        build_suite(suite, config, parse=_sized_parser(sizes), translate=fake_translate)
        (tmp_path / "out" / "_common.py").write_text(RUNTIME_STUB)
        (tmp_path / "pytest.ini").write_text("[pytest]\n")
        return tmp_path / "out"

    def _run_pytest(self, output_dir: Path, fast: bool) -> subprocess.CompletedProcess:
        env = {
            key: value
            for key, value in os.environ.items()
            if key not in ("FAST_TESTS", "PYTEST_ADDOPTS")
        }
        if fast:
            env["FAST_TESTS"] = "1"
        return subprocess.run(
            [
                sys.executable,
                "-m",
                "pytest",
                str(output_dir),
                "-q",
                "-p",
                "no:cacheprovider",
                "-c",
                str(output_dir.parent / "pytest.ini"),
                "--rootdir",
                str(output_dir),
            ],
            capture_output=True,
            text=True,
            env=env,
            cwd=output_dir.parent,
            timeout=120,
        )

    def test_full_run_collects_every_module(self, built_suite):
        """Test that pytest collects and passes every generated module."""
        result = self._run_pytest(built_suite, fast=False)
        assert result.returncode == 0, result.stdout + result.stderr
        assert "3 passed" in result.stdout

    def test_fast_run_skips_slow_modules(self, built_suite):
        """Test that the manifest drops gated modules when FAST_TESTS is set."""
        result = self._run_pytest(built_suite, fast=True)
        assert result.returncode == 0, result.stdout + result.stderr
        assert "2 passed" in result.stdout
