"""
End-to-end tests: route discovery, route map assembly, regeneration and CLI.
"""

import dataclasses
import json
import os
import runpy
import sys
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from routescan.cli import main
from routescan.config import settings
from routescan.discovery import find_route_files
from routescan.errors import ParserConfigError, RouteParseError, RoutesRootNotFoundError, ScanRootError
from routescan.generator import RouteMapGenerator
from routescan.observability import get_metrics_collector
from routescan.route_map import analyze_route_file, generate_route_map


USERS_ROUTE = """
    import { json } from '@sveltejs/kit';

    export async function GET({ url }) {
        return json({ ok: true });
    }
"""

ITEMS_ROUTE = """
    import { json, error } from '@sveltejs/kit';
    import type { RequestHandler } from './$types';

    /**
     * Lists items.
     */
    export const GET: RequestHandler = async ({ url }) => {
        const limit = url.searchParams.get('limit');
        const tags = url.searchParams.getAll('tag');
        return json({ items: [], limit });
    };

    /**
     * Creates an item.
     * @body { name: string }
     */
    export async function POST({ request }) {
        const payload = await request.json();
        if (!payload.name) {
            throw error(400, 'name required');
        }
        return json({ id: 1 });
    }

    export function helper() {
        return json({ internal: true });
    }
"""


class TestFindRouteFiles:

    def test_finds_marker_files_recursively(self, project, write_route):
        users = write_route("users/[[id]]", USERS_ROUTE)
        items = write_route("api/items", ITEMS_ROUTE)
        (project / "src" / "routes" / "+page.svelte").write_text("<h1>hi</h1>")
        assert sorted(find_route_files(project)) == sorted([users, items])

    def test_ignored_dirs_pruned(self, project, write_route):
        write_route("users", USERS_ROUTE)
        vendored = project / "node_modules" / "pkg" / "src" / "routes"
        vendored.mkdir(parents=True)
        (vendored / "+server.ts").write_text("export function GET() {}")
        found = find_route_files(project, ignored_dirs=("node_modules",))
        assert len(found) == 1
        assert "node_modules" not in found[0]

    def test_missing_root(self, tmp_path):
        with pytest.raises(ScanRootError):
            find_route_files(tmp_path / "nope")

    @pytest.mark.skipif(not hasattr(os, "geteuid") or os.geteuid() == 0, reason="root ignores permissions")
    def test_unreadable_directory(self, project, write_route):
        write_route("users", USERS_ROUTE)
        locked = project / "src" / "routes" / "locked"
        locked.mkdir()
        locked.chmod(0)
        try:
            with pytest.raises(ScanRootError):
                find_route_files(project)
        finally:
            locked.chmod(0o755)


class TestGenerateRouteMap:

    def test_end_to_end_optional_segment(self, project, write_route):
        users = write_route("users/[[id]]", USERS_ROUTE)
        routes = generate_route_map(project)

        assert list(routes) == [users]
        route = routes[users]["GET"]
        assert route.method == "GET"
        assert route.path == "/users/[[id]]"
        assert route.urls == ("/users", "/users/{id}")
        assert "{ ok: boolean; }" in route.returnType
        assert route.queryParameters == ()
        assert route.bodyType is None
        assert route.documentation is None
        assert route.declaredType == "({ url }) => Promise<Response>"

    def test_methods_docs_and_body(self, project, write_route):
        items = write_route("api/items", ITEMS_ROUTE)
        table = generate_route_map(project)[items]

        assert set(table) == {"GET", "POST"}
        get, post = table["GET"], table["POST"]

        assert get.declaredType == "RequestHandler"
        assert get.returnType == "{ items: any[]; limit: string | null; }"
        assert get.queryParameters == ("limit", "tag")
        assert get.documentation == "Lists items."
        assert get.bodyType is None

        assert post.returnType == "{ id: number; }"
        assert post.documentation == "Creates an item."
        assert post.bodyType == "{ name: string }"
        assert post.urls == get.urls == ("/api/items",)
        assert post.path == "/api/items"

    def test_non_method_export_contributes_nothing(self, project, write_route):
        write_route("internal", """
            export function helper() {
                return json({ a: 1 });
            }
            export const GET = 'not a handler';
        """)
        assert generate_route_map(project) == {}
        counts = get_metrics_collector().get_metrics_summary()["fallbacks"]["counts"]
        assert counts.get("non_function_export") == 1

    def test_unknown_return_type_sentinel(self, project, write_route):
        path = write_route("plain", """
            export function DELETE() {
                return new Response(null, { status: 204 });
            }
        """)
        route = generate_route_map(project)[path]["DELETE"]
        assert route.returnType == settings.UNKNOWN_TYPE == "any"

    def test_root_route(self, project, write_route):
        path = write_route("", USERS_ROUTE)
        route = generate_route_map(project)[path]["GET"]
        assert route.path == "/"
        assert route.urls == ("/",)

    def test_doc_block_must_be_adjacent(self, project, write_route):
        path = write_route("gap", """
            /** Detached. */

            export function GET() {
                return json({});
            }
        """)
        assert generate_route_map(project)[path]["GET"].documentation is None

    def test_parse_error_is_fatal(self, project, write_route):
        write_route("good", USERS_ROUTE)
        write_route("bad", "export function GET( {\n")
        with pytest.raises(RouteParseError):
            generate_route_map(project)

    def test_missing_root(self, tmp_path):
        with pytest.raises(ScanRootError):
            generate_route_map(tmp_path / "missing")

    def test_grammar_failure_is_fatal(self, project, write_route):
        write_route("users", USERS_ROUTE)
        with patch("routescan.route_map.load_language", side_effect=ParserConfigError("no grammar")):
            with pytest.raises(ParserConfigError):
                generate_route_map(project)

    def test_strict_routes_root(self, tmp_path):
        outside = tmp_path / "lib" / "api"
        outside.mkdir(parents=True)
        (outside / "+server.ts").write_text("export function GET() { return json({}); }\n")
        strict = dataclasses.replace(settings, STRICT_ROUTES_ROOT=True)
        with pytest.raises(RoutesRootNotFoundError):
            generate_route_map(tmp_path, strict)
        lenient = generate_route_map(tmp_path)
        (route,) = [table["GET"] for table in lenient.values()]
        assert route.path.endswith("/lib/api")

    def test_parallel_matches_sequential(self, project, write_route):
        write_route("users/[[id]]", USERS_ROUTE)
        write_route("api/items", ITEMS_ROUTE)
        for i in range(6):
            write_route(f"generated/r{i}/[[page]]", USERS_ROUTE)

        sequential = generate_route_map(project)
        parallel = generate_route_map(project, dataclasses.replace(settings, SCAN_WORKERS=4))
        assert parallel == sequential
        assert len(parallel) == 8

    def test_route_is_immutable(self, project, write_route):
        path = write_route("users", USERS_ROUTE)
        route = analyze_route_file(path)["GET"]
        with pytest.raises(ValidationError):
            route.method = "POST"
        with pytest.raises(AttributeError):
            route.urls.append("/other")
        with pytest.raises(AttributeError):
            route.queryParameters.append("q")

    def test_self_referencing_object_does_not_abort_scan(self, project, write_route):
        path = write_route("cyclic", """
            import { json } from '@sveltejs/kit';

            const api = { next: () => api.next };

            export function GET() {
                return json(api);
            }
        """)
        route = generate_route_map(project)[path]["GET"]
        assert route.returnType == "{ next: () => () => any; }"

    def test_deep_nesting_degrades_to_unknown(self, project, write_route):
        path = write_route("deep", """
            export function GET() {
                return json({ ok: true });
            }
        """)
        with patch("routescan.route_map.infer_response_type", side_effect=RecursionError):
            route = generate_route_map(project)[path]["GET"]
        assert route.returnType == settings.UNKNOWN_TYPE
        assert route.declaredType == settings.UNKNOWN_TYPE
        counts = get_metrics_collector().get_metrics_summary()["fallbacks"]["counts"]
        assert counts.get("type_too_deep") == 1

    def test_parse_time_average_is_bounded(self, project, write_route):
        write_route("users", USERS_ROUTE)
        write_route("api/items", ITEMS_ROUTE)
        generate_route_map(project)
        generate_route_map(project)
        metrics = get_metrics_collector()
        summary = metrics.get_metrics_summary()
        assert summary["files"]["scanned"] == 4
        assert summary["timing"]["avg_file_parse_time"] == pytest.approx(metrics.total_parse_time / 4)
        assert not any(isinstance(value, list) for value in vars(metrics).values())


class TestRouteMapGenerator:

    def test_routes_are_cached(self, project, write_route):
        write_route("users", USERS_ROUTE)
        generator = RouteMapGenerator(project)
        first = generator.routes
        assert generator.routes is first

    def test_failed_rebuild_keeps_previous_map(self, project, write_route):
        users = write_route("users", USERS_ROUTE)
        generator = RouteMapGenerator(project)
        before = generator.rebuild()

        write_route("broken", "export const GET = (;\n")
        with pytest.raises(RouteParseError):
            generator.rebuild()
        assert generator.routes is before
        assert list(generator.routes) == [users]
        scans = get_metrics_collector().get_metrics_summary()["scans"]
        assert scans == {"completed": 1, "failed": 1}

    def test_change_trigger(self, project, write_route):
        write_route("users", USERS_ROUTE)
        generator = RouteMapGenerator(project)
        generator.rebuild()

        assert generator.on_file_changed(str(project / "src" / "routes" / "+page.svelte")) is None
        added = write_route("posts/[slug]", USERS_ROUTE)
        rebuilt = generator.on_file_changed(added)
        assert added in rebuilt
        assert rebuilt[added]["GET"].urls == ("/posts/{slug}",)

    def test_artifact_untouched_on_failure(self, project, write_route, tmp_path):
        write_route("users", USERS_ROUTE)
        output = tmp_path / "out" / "routes.json"
        generator = RouteMapGenerator(project)
        generator.write_artifact(output)
        original = output.read_text()

        write_route("broken", "export function GET( {\n")
        with pytest.raises(RouteParseError):
            generator.rebuild()
        assert output.read_text() == original
        assert [p.name for p in output.parent.iterdir()] == ["routes.json"]

        data = json.loads(original)
        (table,) = data.values()
        assert table["GET"]["urls"] == ["/users"]
        assert "documentation" not in table["GET"]


class TestCli:

    def test_writes_output(self, project, write_route, tmp_path):
        users = write_route("users/[[id]]", USERS_ROUTE)
        output = tmp_path / "routes.json"
        assert main([str(project), "-o", str(output), "--workers", "2"]) == 0
        data = json.loads(output.read_text())
        assert data[users]["GET"]["urls"] == ["/users", "/users/{id}"]

    def test_stdout(self, project, write_route, capsys):
        write_route("users", USERS_ROUTE)
        assert main([str(project)]) == 0
        data = json.loads(capsys.readouterr().out)
        assert len(data) == 1

    def test_failure_exit_code(self, tmp_path):
        assert main([str(tmp_path / "missing")]) == 1

    def test_module_entry_point(self, project, write_route, capsys, monkeypatch):
        write_route("users", USERS_ROUTE)
        monkeypatch.setattr(sys, "argv", ["routescan", str(project)])
        with pytest.raises(SystemExit) as exc_info:
            runpy.run_module("routescan", run_name="__main__")
        assert exc_info.value.code == 0
        assert len(json.loads(capsys.readouterr().out)) == 1
