from pathlib import Path


def _project_root() -> Path:
    return Path(__file__).resolve().parents[1]


def test_make_test_target_runs_lint_type_and_pytest() -> None:
    makefile = (_project_root() / "Makefile").read_text(encoding="utf-8")
    start = makefile.index("test:\n")
    end = makefile.index("\n\nlint:\n")
    block = makefile[start:end]

    assert "uv run --extra dev ruff check ." in block
    assert "uv run --extra dev mypy" in block
    assert "uv run --extra dev pytest" in block


def test_readme_documents_cli_and_static_probe() -> None:
    readme = (_project_root() / "README.md").read_text(encoding="utf-8")

    assert "Honest scope:" in readme
    assert "### Common Gotchas" in readme
    assert "StaticProbe" in readme
    assert "phpopt params --no-jit" in readme
