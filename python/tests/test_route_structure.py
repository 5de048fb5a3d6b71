"""Structural tests for route code.

Routes are thin transport adapters:
- No SQLAlchemy beyond the Session annotation
- No raw DB calls; all queries live in kivendi.services
- From kivendi.db only session helpers (get_db, open_session for sockets)
- Every HTTP handler returns a dict envelope or a Response, or a union of them
"""

import ast
from pathlib import Path

import pytest

ROUTES_DIR = Path(__file__).parent.parent / "kivendi" / "api" / "routes"

HTTP_METHODS = {"get", "post", "put", "patch", "delete"}
ALLOWED_DB_NAMES = {"get_db", "open_session"}
RETURN_TYPES = {"dict", "Response", "JSONResponse"}


def get_all_route_files() -> list[Path]:
    return sorted(f for f in ROUTES_DIR.iterdir() if f.suffix == ".py" and f.name != "__init__.py")


def _parse(path: Path) -> ast.Module:
    return ast.parse(path.read_text())


def _router_method(node: ast.AST) -> str | None:
    """The router.<method> a handler is registered with, if any."""
    if not isinstance(node, ast.FunctionDef | ast.AsyncFunctionDef):
        return None
    for decorator in node.decorator_list:
        if (
            isinstance(decorator, ast.Call)
            and isinstance(decorator.func, ast.Attribute)
            and isinstance(decorator.func.value, ast.Name)
            and decorator.func.value.id == "router"
        ):
            return decorator.func.attr
    return None


def _annotation_names(node: ast.expr | None) -> set[str]:
    """Names in a return annotation, reading `a | b` unions. Anything else is kept as source."""
    if node is None:
        return set()
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        return _annotation_names(node.left) | _annotation_names(node.right)
    if isinstance(node, ast.Name):
        return {node.id}
    return {f"<{ast.unparse(node)}>"}


@pytest.fixture
def route_files() -> list[Path]:
    files = get_all_route_files()
    assert files, "No route files found to test"
    return files


class TestForbiddenImports:
    def test_only_session_from_sqlalchemy(self, route_files: list[Path]):
        for route_file in route_files:
            for node in ast.walk(_parse(route_file)):
                if isinstance(node, ast.Import):
                    for alias in node.names:
                        assert not alias.name.startswith("sqlalchemy"), (
                            f"{route_file.name}: forbidden import '{alias.name}'"
                        )
                elif isinstance(node, ast.ImportFrom) and node.module:
                    if node.module == "sqlalchemy.orm":
                        names = {alias.name for alias in node.names}
                        assert names == {"Session"}, (
                            f"{route_file.name}: only Session may come from sqlalchemy.orm"
                        )
                    else:
                        assert not node.module.startswith("sqlalchemy"), (
                            f"{route_file.name}: forbidden import from '{node.module}'"
                        )

    def test_db_imports_limited_to_session_helpers(self, route_files: list[Path]):
        for route_file in route_files:
            for node in ast.walk(_parse(route_file)):
                if not (isinstance(node, ast.ImportFrom) and node.module):
                    continue
                if not node.module.startswith("kivendi.db"):
                    continue
                assert node.module == "kivendi.db.session", (
                    f"{route_file.name}: routes must not import from '{node.module}'"
                )
                for alias in node.names:
                    assert alias.name in ALLOWED_DB_NAMES, (
                        f"{route_file.name}: forbidden import '{alias.name}' from kivendi.db"
                    )

    def test_no_raw_db_operations(self, route_files: list[Path]):
        for route_file in route_files:
            for node in ast.walk(_parse(route_file)):
                if not (isinstance(node, ast.Call) and isinstance(node.func, ast.Attribute)):
                    continue
                func = node.func
                if func.attr in ("execute", "scalar", "scalars", "query", "add", "commit"):
                    if isinstance(func.value, ast.Name) and func.value.id in ("db", "session"):
                        pytest.fail(
                            f"{route_file.name}: forbidden call '{func.value.id}.{func.attr}()'"
                        )

    def test_routes_delegate_to_services(self, route_files: list[Path]):
        for route_file in route_files:
            if route_file.name == "health.py":
                continue
            assert "kivendi.services" in route_file.read_text(), (
                f"{route_file.name} should call into kivendi.services"
            )


class TestRouteFileStructure:
    def test_all_routes_have_router(self, route_files: list[Path]):
        for route_file in route_files:
            has_router = any(
                isinstance(node, ast.Assign)
                and any(isinstance(t, ast.Name) and t.id == "router" for t in node.targets)
                for node in ast.walk(_parse(route_file))
            )
            assert has_router, f"{route_file.name} must define a 'router' object"

    def test_http_handlers_return_dict_or_response(self, route_files: list[Path]):
        handlers = 0
        for route_file in route_files:
            for node in ast.walk(_parse(route_file)):
                if _router_method(node) not in HTTP_METHODS:
                    continue
                handlers += 1
                names = _annotation_names(node.returns)
                assert names, f"{route_file.name}:{node.name} needs a return annotation"
                assert names <= RETURN_TYPES, (
                    f"{route_file.name}:{node.name} should return dict or Response, "
                    f"not {' | '.join(sorted(names - RETURN_TYPES))}"
                )
        assert handlers > 0

    def test_union_annotation_is_read(self):
        returns = ast.parse("def f() -> dict | JSONResponse: ...").body[0].returns
        assert _annotation_names(returns) == {"dict", "JSONResponse"}
        assert _annotation_names(None) == set()
        assert _annotation_names(ast.parse("def f() -> list[dict]: ...").body[0].returns) == {
            "<list[dict]>"
        }

    def test_socket_handlers_live_in_ws_module(self, route_files: list[Path]):
        for route_file in route_files:
            for node in ast.walk(_parse(route_file)):
                if _router_method(node) == "websocket":
                    assert route_file.name == "ws.py", (
                        f"{route_file.name}:{node.name} should be declared in ws.py"
                    )
