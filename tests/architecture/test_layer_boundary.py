"""
Layer boundaries between the four packages.

1. agri_kernel/** never imports agri_engines, agri_config or agri_services.
   The kernel never depends upward.

2. agri_engines/** are pure: no agri_config, no agri_services, no database
   layer (sqlalchemy, agri_kernel.db, agri_kernel.models,
   agri_kernel.repositories).

3. agri_config/** never imports agri_services.

4. agri_kernel.domain has no persistence dependency.

5. Services take a clock instead of reading the wall clock.

These tests read source code via AST; they cannot break anything.
"""

import ast
from pathlib import Path

ROOT = Path(__file__).parents[2]


def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _extract_imports(path: Path) -> list[tuple[int, str]]:
    """(line_number, module) for every import in a file."""
    tree = ast.parse(path.read_text(), filename=str(path))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found: list[str] = []
    for path in _python_files(package):
        for lineno, module in _extract_imports(path):
            for prefix in forbidden:
                if module == prefix or module.startswith(f"{prefix}."):
                    found.append(f"  {path.relative_to(ROOT)}:{lineno} imports '{module}'")
    return found


class TestPackagesExist:
    def test_all_layers_present(self):
        for package in ("agri_kernel", "agri_engines", "agri_config", "agri_services"):
            assert (ROOT / package / "__init__.py").exists(), package


class TestKernelNoUpwardDependencies:
    FORBIDDEN = ("agri_engines", "agri_config", "agri_services")

    def test_kernel_does_not_import_outer_layers(self):
        violations = _violations("agri_kernel", self.FORBIDDEN)
        assert not violations, (
            "Kernel boundary violation: agri_kernel/** must not import "
            "outer packages:\n" + "\n".join(violations)
        )


class TestEnginesArePure:
    FORBIDDEN = (
        "agri_config",
        "agri_services",
        "sqlalchemy",
        "agri_kernel.db",
        "agri_kernel.models",
        "agri_kernel.repositories",
    )

    def test_engines_have_no_io_dependencies(self):
        violations = _violations("agri_engines", self.FORBIDDEN)
        assert not violations, (
            "Engine purity violation: agri_engines/** must not touch "
            "configuration, services or persistence:\n" + "\n".join(violations)
        )


class TestConfigBoundary:
    def test_config_does_not_import_services(self):
        violations = _violations("agri_config", ("agri_services",))
        assert not violations, "\n".join(violations)


class TestDomainIsPersistenceFree:
    FORBIDDEN = ("sqlalchemy", "agri_kernel.db", "agri_kernel.models", "agri_kernel.repositories")

    def test_domain_has_no_orm_imports(self):
        violations = [
            v
            for v in _violations("agri_kernel", self.FORBIDDEN)
            if "agri_kernel/domain/" in v
        ]
        assert not violations, "\n".join(violations)


class TestServicesUseInjectedClock:
    def test_no_wall_clock_reads_in_services(self):
        violations: list[str] = []
        for path in _python_files("agri_services"):
            tree = ast.parse(path.read_text(), filename=str(path))
            for node in ast.walk(tree):
                if (
                    isinstance(node, ast.Attribute)
                    and node.attr in ("now", "utcnow", "today")
                    and isinstance(node.value, ast.Name)
                    and node.value.id in ("datetime", "date")
                ):
                    violations.append(f"  {path.relative_to(ROOT)}:{node.lineno} {node.value.id}.{node.attr}")
        assert not violations, (
            "Services must read time from the injected Clock:\n" + "\n".join(violations)
        )
