"""
Import-boundary enforcement for the layer stack.

    stock_engines   -- pure planners; may import only stock_kernel.exceptions
    stock_kernel    -- may not import services, modules or config
    stock_config    -- may import only stock_kernel.exceptions
    stock_services  -- may not import stock_modules
    stock_modules   -- each module stands alone; no cross-module imports

Also checks that only the orchestrator commits, and that engines never
read the wall clock or the environment.

All scanning is done via AST; these tests are read-only.
"""

import ast
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]

# The kernel's schema helpers pull in every ORM table lazily, at call time
KERNEL_LAZY_IMPORTS = {
    ("stock_kernel/db/engine.py", "stock_modules._orm_registry"),
}


def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _rel(path: Path) -> str:
    return path.relative_to(ROOT).as_posix()


def _tree(path: Path) -> ast.AST:
    return ast.parse(path.read_text(), filename=str(path))


def _extract_imports(path: Path) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every import in *path*."""
    results: list[tuple[int, str]] = []
    for node in ast.walk(_tree(path)):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _violations(package: str, forbidden: tuple[str, ...], allowed=frozenset()):
    found = []
    for path in _python_files(package):
        for lineno, module in _extract_imports(path):
            if _matches_any(module, forbidden) and (_rel(path), module) not in allowed:
                found.append(f"{_rel(path)}:{lineno} imports {module}")
    return found


def test_packages_scanned():
    for package in ("stock_kernel", "stock_engines", "stock_services", "stock_modules"):
        assert _python_files(package), f"{package} has no sources under {ROOT}"


class TestEnginePurity:
    def test_engines_import_no_persistence_or_upper_layers(self):
        forbidden = (
            "sqlalchemy",
            "psycopg2",
            "stock_services",
            "stock_modules",
            "stock_config",
        )
        assert _violations("stock_engines", forbidden) == []

    def test_engines_use_only_kernel_exceptions(self):
        found = []
        for path in _python_files("stock_engines"):
            for lineno, module in _extract_imports(path):
                if _matches_any(module, ("stock_kernel",)) and module != "stock_kernel.exceptions":
                    found.append(f"{_rel(path)}:{lineno} imports {module}")
        assert found == []

    def test_engines_never_read_wall_clock_or_environment(self):
        impure = {"datetime.now", "datetime.utcnow", "date.today", "os.environ", "os.getenv"}
        found = []
        for path in _python_files("stock_engines"):
            for node in ast.walk(_tree(path)):
                if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name):
                    name = f"{node.value.id}.{node.attr}"
                    if name in impure:
                        found.append(f"{_rel(path)}:{node.lineno} uses {name}")
        assert found == []


class TestKernelBoundary:
    def test_kernel_does_not_import_upper_layers(self):
        forbidden = ("stock_services", "stock_modules", "stock_config")
        assert _violations("stock_kernel", forbidden, KERNEL_LAZY_IMPORTS) == []


class TestConfigBoundary:
    def test_config_depends_only_on_kernel_exceptions(self):
        found = []
        for path in _python_files("stock_config"):
            for lineno, module in _extract_imports(path):
                if not module.startswith("stock_"):
                    continue
                if module == "stock_kernel.exceptions" or _matches_any(module, ("stock_config",)):
                    continue
                found.append(f"{_rel(path)}:{lineno} imports {module}")
        assert found == []


class TestServiceBoundary:
    def test_services_do_not_import_modules(self):
        assert _violations("stock_services", ("stock_modules", "stock_config")) == []


class TestModuleIsolation:
    MODULES = ("expense", "inventory", "sales", "wastage")

    def test_modules_do_not_import_each_other(self):
        found = []
        for name in self.MODULES:
            others = tuple(f"stock_modules.{o}" for o in self.MODULES if o != name)
            found.extend(_violations(f"stock_modules/{name}", others))
        assert found == []


class TestCommitOwnership:
    def test_only_the_orchestrator_commits(self):
        found = []
        for package in ("stock_kernel/services", "stock_services", "stock_modules"):
            for path in _python_files(package):
                if _rel(path) == "stock_services/transaction_orchestrator.py":
                    continue
                for node in ast.walk(_tree(path)):
                    if (
                        isinstance(node, ast.Call)
                        and isinstance(node.func, ast.Attribute)
                        and node.func.attr == "commit"
                        and isinstance(node.func.value, ast.Name)
                        and node.func.value.id == "session"
                    ):
                        found.append(f"{_rel(path)}:{node.lineno} calls session.commit()")
        assert found == []
