"""
Kernel boundary and invariants contract.

1. stock_kernel/** may NOT import stock_config.  Configuration reaches the
   kernel only through stock_config.bridges.
2. stock_kernel/domain/** is pure: no ORM, driver or db-layer imports at
   runtime (TYPE_CHECKING imports are allowed).
3. The invariants declaration is complete and documented.

These tests read source code via AST.
"""

import ast
from pathlib import Path

from stock_kernel.invariants import (
    ALL_STOCK_INVARIANTS,
    FORBIDDEN_KERNEL_IMPORTS,
    StockInvariant,
)

REPO_ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[Path]:
    return sorted((REPO_ROOT / package).rglob("*.py"))


def _is_type_checking_block(node: ast.AST) -> bool:
    return (
        isinstance(node, ast.If)
        and isinstance(node.test, ast.Name)
        and node.test.id == "TYPE_CHECKING"
    )


def _runtime_imports(path: Path) -> list[tuple[int, str]]:
    """(line, module) for every import not guarded by ``if TYPE_CHECKING``."""
    tree = ast.parse(path.read_text(), filename=str(path))
    results: list[tuple[int, str]] = []

    def visit(node: ast.AST) -> None:
        if _is_type_checking_block(node):
            return
        if isinstance(node, ast.Import):
            results.extend((node.lineno, alias.name) for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
        for child in ast.iter_child_nodes(node):
            visit(child)

    visit(tree)
    return results


def _matches(module: str, prefix: str) -> bool:
    return module == prefix or module.startswith(f"{prefix}.")


class TestKernelNoUpwardDependencies:
    def test_kernel_does_not_import_config(self):
        violations = [
            f"  {path.relative_to(REPO_ROOT)}:{lineno} imports '{module}'"
            for path in _python_files("stock_kernel")
            for lineno, module in _runtime_imports(path)
            if any(_matches(module, p) for p in FORBIDDEN_KERNEL_IMPORTS)
        ]

        assert not violations, (
            "Kernel boundary violation: stock_kernel/** must not import "
            "configuration packages:\n" + "\n".join(violations)
        )


class TestKernelDomainPurity:
    FORBIDDEN_MODULES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "stock_kernel.db",
        "stock_kernel.models",
        "stock_kernel.stores",
    )

    def test_domain_no_orm_imports(self):
        violations = [
            f"  {path.relative_to(REPO_ROOT)}:{lineno} imports '{module}'"
            for path in _python_files("stock_kernel/domain")
            for lineno, module in _runtime_imports(path)
            if any(_matches(module, f) for f in self.FORBIDDEN_MODULES)
        ]

        assert not violations, (
            "Domain purity violation: stock_kernel/domain/** must not "
            "import ORM or database modules:\n" + "\n".join(violations)
        )


class TestInvariantsDeclaration:
    def test_all_invariants_listed(self):
        assert ALL_STOCK_INVARIANTS == frozenset(StockInvariant)
        assert len(ALL_STOCK_INVARIANTS) == 7

    def test_every_invariant_documented(self):
        tree = ast.parse((REPO_ROOT / "stock_kernel" / "invariants.py").read_text())
        enum_class = next(
            node for node in tree.body
            if isinstance(node, ast.ClassDef) and node.name == "StockInvariant"
        )
        documented = set()
        body = enum_class.body
        for assign, following in zip(body, body[1:]):
            if (
                isinstance(assign, ast.Assign)
                and isinstance(following, ast.Expr)
                and isinstance(following.value, ast.Constant)
                and isinstance(following.value.value, str)
            ):
                documented.add(assign.targets[0].id)

        assert documented == {member.name for member in StockInvariant}
