# Tests for packaging and dependency sanity.

import tomllib
from pathlib import Path

PYPROJECT = Path(__file__).resolve().parent.parent / "pyproject.toml"


def _load_pyproject() -> dict:
    return tomllib.loads(PYPROJECT.read_text())


def _dep_names(specs: list[str]) -> set[str]:
    names = set()
    for entry in specs:
        name = entry.split(";")[0]
        for sep in ("[", ">", "<", "=", "~", "!"):
            name = name.split(sep)[0]
        names.add(name.strip().lower())
    return names


def test_fastapi_version_allows_modern_starlette():
    """claude-agent-sdk -> mcp pulls a recent starlette; fastapi must be >= 0.115."""
    deps = _load_pyproject()["project"]["dependencies"]
    fastapi_specs = [d for d in deps if d.lower().startswith("fastapi")]
    assert fastapi_specs, "fastapi not found in core dependencies"
    min_ver = fastapi_specs[0].split(">=")[1].split(",")[0].strip()
    assert [int(x) for x in min_ver.split(".")] >= [0, 115, 0]


def test_runtime_imports_are_declared():
    names = _dep_names(_load_pyproject()["project"]["dependencies"])
    for required in (
        "pydantic",
        "pydantic-settings",
        "rich",
        "fastapi",
        "uvicorn",
        "httpx",
        "sqlalchemy",
        "claude-agent-sdk",
    ):
        assert required in names, f"{required} missing from dependencies"


def test_test_extra():
    extras = _load_pyproject()["project"]["optional-dependencies"]
    assert {"pytest", "pytest-asyncio"} <= _dep_names(extras["test"])


def test_console_script():
    scripts = _load_pyproject()["project"]["scripts"]
    assert scripts["schemabridge"] == "schemabridge.__main__:main"


def test_version_matches_package():
    from schemabridge import __version__

    assert _load_pyproject()["project"]["version"] == __version__
