"""Parse YAML suite files into SuiteSpec models."""

from pathlib import Path

import yaml

from spectestgen.models import SuiteSpec


def load_suite(suite_path: Path) -> SuiteSpec:
    """Parse a YAML suite file and resolve its paths.

    Relative ``spectests_dir`` and ``output_dir`` entries are resolved
    against the suite file's directory.

    Args:
        suite_path: Path to the YAML suite file.

    Returns:
        SuiteSpec populated from the YAML data.
    """
    data = yaml.safe_load(suite_path.read_text(encoding="utf-8"))
    if not data:
        raise ValueError("Suite file is empty")
    suite = SuiteSpec(**data)
    base = suite_path.parent
    return suite.model_copy(
        update={
            "spectests_dir": base / suite.spectests_dir,
            "output_dir": base / suite.output_dir,
        }
    )
