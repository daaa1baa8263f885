"""Write generated test modules and the suite manifest to disk.

Outputs are rewritten only when their content changes, so unchanged scripts
never touch file timestamps and downstream test runs can cache freely.
"""

import logging
import re
from collections.abc import Callable, Sequence
from pathlib import Path

from spectestgen.config import Config
from spectestgen.emitters import BANNER
from spectestgen.errors import GenerationError
from spectestgen.generator import Translator, WastTestGenerator
from spectestgen.models import Directive, FileResult, GeneratedArtifact, SuiteResult, SuiteSpec
from spectestgen.script_parser import parse_wast
from spectestgen.translator import make_translator

logger = logging.getLogger(__name__)

RESERVED_MODULE_NAME = "_common"
MANIFEST_NAME = "conftest.py"
TEST_MODULE_PREFIX = "test_"

ScriptParser = Callable[[bytes, str], Sequence[Directive]]


def make_parser(config: Config) -> ScriptParser:
    """Bind ``wast2json`` settings into a script parser callable.

    Args:
        config: Tool settings.

    Returns:
        Callable mapping (source, name) to directives.
    """

    def parse(source: bytes, name: str) -> list[Directive]:
        return parse_wast(
            source,
            name,
            wast2json_bin=config.wast2json_bin,
            extra_args=config.wast2json_args,
            timeout=config.tool_timeout,
        )

    return parse


def module_name_for(script_path: Path) -> str:
    """Derive the generated module name from a script path.

    The ``test_`` prefix makes pytest collect the module and keeps it from
    shadowing stdlib modules such as ``select`` or the ``conftest`` manifest.

    Args:
        script_path: Script file path.

    Returns:
        A ``test_`` prefixed Python module name based on the file stem.
    """
    stem = re.sub(r"\W", "_", script_path.stem)
    if stem == RESERVED_MODULE_NAME:
        raise GenerationError(
            f"{RESERVED_MODULE_NAME} is a reserved name for the runtime helper module. "
            "Please use other name for the spectest."
        )
    return f"{TEST_MODULE_PREFIX}{stem}"


def write_if_changed(path: Path, content: str) -> bool:
    """Write ``content`` to ``path`` unless the file already holds it.

    Args:
        path: Destination file.
        content: Text to write.

    Returns:
        True when the file was written.
    """
    try:
        if path.exists() and path.read_text(encoding="utf-8") == content:
            return False
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except (OSError, UnicodeError) as exc:
        raise GenerationError(f"Can't write {path}: {exc}") from exc
    return True


def generate_source(
    script_path: Path,
    parse: ScriptParser,
    translate: Translator,
    runtime_module: str = RESERVED_MODULE_NAME,
) -> GeneratedArtifact:
    """Parse one script and generate its test module source.

    Args:
        script_path: Script file to read.
        parse: Script parser collaborator.
        translate: Binary-to-text translator collaborator.
        runtime_module: Import path of the runtime helper module.

    Returns:
        The generated artifact.
    """
    try:
        source = script_path.read_bytes()
    except OSError as exc:
        raise GenerationError(f"Can't read script {script_path}: {exc}") from exc
    directives = parse(source, script_path.name)
    generator = WastTestGenerator(script_path.name, translate, runtime_module)
    return generator.consume(directives)


def generate_test_file(
    script_path: Path,
    output_dir: Path,
    parse: ScriptParser,
    translate: Translator,
    runtime_module: str = RESERVED_MODULE_NAME,
    slow_threshold: int = 200,
) -> FileResult:
    """Generate one test module and write it if it changed.

    Args:
        script_path: Script file to read.
        output_dir: Directory of the generated test modules.
        parse: Script parser collaborator.
        translate: Binary-to-text translator collaborator.
        runtime_module: Import path of the runtime helper module.
        slow_threshold: Directive count above which the module is gated.

    Returns:
        FileResult describing the written module.
    """
    module_name = module_name_for(script_path)
    artifact = generate_source(script_path, parse, translate, runtime_module)
    output_path = output_dir / f"{module_name}.py"
    written = write_if_changed(output_path, artifact.source)
    if written:
        logger.info("Wrote %s (%d directives)", output_path, artifact.command_count)
    else:
        logger.debug("%s unchanged", output_path)
    return FileResult(
        script=script_path,
        module_name=module_name,
        output_path=output_path,
        command_count=artifact.command_count,
        written=written,
        gated=artifact.command_count > slow_threshold,
    )


def assemble_manifest(results: Sequence[FileResult], fast_tests_env: str = "FAST_TESTS") -> str:
    """Render the ``conftest.py`` that enumerates every generated module.

    Modules flagged as gated are excluded from collection when the fast-tests
    environment variable is set.

    Args:
        results: Per-file results in suite order.
        fast_tests_env: Environment variable enabling the fast build.

    Returns:
        Manifest source text.
    """
    generated = "".join(f'    "{result.module_name}.py",\n' for result in results)
    slow = "".join(
        f'    "{result.module_name}.py",\n' for result in results if result.gated
    )
    return (
        f"{BANNER}"
        f"# The {RESERVED_MODULE_NAME} module is not autogenerated, "
        "as it provides common functions for the spectests\n"
        "import os\n"
        "\n"
        f'FAST_TESTS = os.environ.get("{fast_tests_env}", "") not in ("", "0")\n'
        "\n"
        "GENERATED_TESTS = [\n"
        f"{generated}"
        "]\n"
        "\n"
        "SLOW_TESTS = [\n"
        f"{slow}"
        "]\n"
        "\n"
        "collect_ignore = list(SLOW_TESTS) if FAST_TESTS else []\n"
    )


def build_suite(
    suite: SuiteSpec,
    config: Config,
    parse: ScriptParser | None = None,
    translate: Translator | None = None,
) -> SuiteResult:
    """Generate every script of a suite plus its manifest.

    Args:
        suite: Suite with resolved directories.
        config: Tool and threshold settings.
        parse: Optional script parser override for tests.
        translate: Optional translator override for tests.

    Returns:
        SuiteResult with per-file results in suite order.
    """
    parse = parse or make_parser(config)
    translate = translate or make_translator(config.wasm2wat_bin, config.tool_timeout)

    scripts = [suite.spectests_dir / test for test in suite.tests]
    names = [module_name_for(script) for script in scripts]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise GenerationError(f"Scripts map to the same module name: {', '.join(duplicates)}")

    results = [
        generate_test_file(
            script,
            suite.output_dir,
            parse,
            translate,
            runtime_module=suite.runtime_module,
            slow_threshold=config.slow_test_threshold,
        )
        for script in scripts
    ]
    manifest_path = suite.output_dir / MANIFEST_NAME
    manifest_written = write_if_changed(
        manifest_path, assemble_manifest(results, config.fast_tests_env)
    )
    if manifest_written:
        logger.info("Wrote manifest %s", manifest_path)
    return SuiteResult(
        files=results, manifest_path=manifest_path, manifest_written=manifest_written
    )
