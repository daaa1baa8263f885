"""Subprocess wrapper around wabt's ``wasm2wat``."""

import logging
import subprocess
import tempfile
from pathlib import Path

from spectestgen.errors import TranslationError

logger = logging.getLogger(__name__)


def build_wasm2wat_command(binary_path: Path, wasm2wat_bin: str = "wasm2wat") -> list[str]:
    """Construct the ``wasm2wat`` command for a module file.

    Args:
        binary_path: Path of the module binary.
        wasm2wat_bin: Executable name or path.

    Returns:
        List of command arguments.
    """
    return [wasm2wat_bin, str(binary_path)]


def wasm_to_wat(binary: bytes, wasm2wat_bin: str = "wasm2wat", timeout: int = 60) -> str:
    """Render a module binary as text.

    Args:
        binary: Module binary.
        wasm2wat_bin: Executable name or path.
        timeout: Subprocess timeout in seconds.

    Returns:
        The module's text format.
    """
    with tempfile.TemporaryDirectory() as tmp:
        binary_path = Path(tmp) / "module.wasm"
        binary_path.write_bytes(binary)
        cmd = build_wasm2wat_command(binary_path, wasm2wat_bin)
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, encoding="utf-8", timeout=timeout
            )
        except subprocess.TimeoutExpired as exc:
            raise TranslationError(f"{wasm2wat_bin} timed out after {timeout}s") from exc
        except UnicodeDecodeError as exc:
            raise TranslationError(f"{wasm2wat_bin} output is not UTF-8: {exc}") from exc
        except FileNotFoundError as exc:
            raise TranslationError(f"Translator binary not found: {wasm2wat_bin}") from exc
    if result.returncode != 0:
        raise TranslationError(
            f"Can't convert module back to text: {result.stderr.strip() or result.returncode}"
        )
    logger.debug("Translated %d byte module", len(binary))
    return result.stdout


def make_translator(wasm2wat_bin: str = "wasm2wat", timeout: int = 60):
    """Bind translator settings into a ``bytes -> str`` callable.

    Args:
        wasm2wat_bin: Executable name or path.
        timeout: Subprocess timeout in seconds.

    Returns:
        Callable suitable for ``WastTestGenerator``.
    """

    def translate(binary: bytes) -> str:
        return wasm_to_wat(binary, wasm2wat_bin=wasm2wat_bin, timeout=timeout)

    return translate
