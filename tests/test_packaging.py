"""
tests.test_packaging

Runtime dependencies declared in pyproject.toml match what the package imports.
"""

from __future__ import annotations

import ast
import re
import sys
import tomllib
from pathlib import Path

_ROOT = Path(__file__).resolve().parents[1]

# Import name -> distribution name, where they differ.
_DISTRIBUTIONS = {"jwt": "pyjwt", "pydantic_settings": "pydantic-settings"}


def _declared(requirements: list[str]) -> set[str]:
    return {re.split(r"[\[<>=!~ ]", r, maxsplit=1)[0].lower() for r in requirements}


def _third_party_imports() -> set[str]:
    found: set[str] = set()
    for path in (_ROOT / "src" / "team_authz").rglob("*.py"):
        for node in ast.walk(ast.parse(path.read_text())):
            if isinstance(node, ast.Import):
                names = [a.name for a in node.names]
            elif isinstance(node, ast.ImportFrom) and node.level == 0 and node.module:
                names = [node.module]
            else:
                continue
            for name in names:
                top = name.split(".")[0]
                if top != "team_authz" and top not in sys.stdlib_module_names:
                    found.add(_DISTRIBUTIONS.get(top, top))
    return found


def test_runtime_imports_are_declared_and_test_tools_are_not_runtime() -> None:
    project = tomllib.loads((_ROOT / "pyproject.toml").read_text())["project"]
    runtime = _declared(project["dependencies"])
    test_only = _declared(project["optional-dependencies"]["test"])

    assert _third_party_imports() <= runtime
    assert "httpx" in test_only
    assert not (runtime & {"httpx", "pytest", "pytest-asyncio"})
