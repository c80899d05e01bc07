"""Shared fixtures: throwaway SvelteKit projects and a clean metrics collector."""

import textwrap
from pathlib import Path

import pytest

from routescan.observability import reset_metrics
from routescan.parsers.tree_sitter_utils import RouteParser


@pytest.fixture(autouse=True)
def clean_metrics():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def project(tmp_path):
    """A project root with an empty src/routes directory."""
    (tmp_path / "src" / "routes").mkdir(parents=True)
    return tmp_path


@pytest.fixture
def write_route(project):
    """Write a +server.ts below src/routes and return its absolute path."""
    def _write(route_dir: str, source: str) -> str:
        directory = project / "src" / "routes" / route_dir if route_dir else project / "src" / "routes"
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / "+server.ts"
        path.write_text(textwrap.dedent(source).lstrip("\n"), encoding="utf-8")
        return str(path.resolve())
    return _write


@pytest.fixture
def parse():
    """Parse a TypeScript snippet into a tree-sitter tree."""
    parser = RouteParser()

    def _parse(source: str):
        return parser.parse(textwrap.dedent(source).lstrip("\n"), "snippet.ts")
    return _parse
