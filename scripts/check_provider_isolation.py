#!/usr/bin/env python3
"""Check that shared modules never depend on a specific provider plugin.

Provider plugins live in ``src/notification_relay/plugins/<name>/`` and are
found by the loader at runtime. Everything outside ``plugins/`` (the
dispatcher, scheduler, provider base, CLI and utilities) must work with any
set of plugins, so it may not import a plugin package or name a provider.

Plugin names are read from the plugin package directories, so a newly added
plugin is covered without editing this script. Each shared module is parsed
with ``ast`` for imports, identifiers and string literals, and tokenized for
comments.

Exit codes:
    0: shared modules are provider-agnostic
    1: violations found
    2: the package layout could not be read
"""

from __future__ import annotations

import argparse
import ast
import io
import re
import sys
import tokenize
from dataclasses import dataclass
from pathlib import Path
from typing import Final

PACKAGE: Final[str] = "notification_relay"
PLUGIN_PACKAGE: Final[str] = f"{PACKAGE}.plugins"
DEFAULT_ROOT: Final[Path] = Path(__file__).resolve().parent.parent / "src" / PACKAGE


@dataclass(slots=True, frozen=True, order=True)
class Violation:
    path: Path
    line: int
    kind: str
    detail: str


def find_plugin_names(package_root: Path) -> frozenset[str]:
    """Return the names of plugin packages under ``plugins/``."""
    plugin_root = package_root / "plugins"
    return frozenset(
        child.name
        for child in plugin_root.iterdir()
        if child.is_dir() and (child / "__init__.py").is_file() and not child.name.startswith("_")
    )


def shared_modules(package_root: Path) -> list[Path]:
    """Return every module of the package that lives outside ``plugins/``."""
    plugin_root = package_root / "plugins"
    return sorted(
        path
        for path in package_root.rglob("*.py")
        if plugin_root not in path.parents and "__pycache__" not in path.parts
    )


def _module_name(package_root: Path, path: Path) -> str:
    parts = path.relative_to(package_root).with_suffix("").parts
    if parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join((PACKAGE, *parts))


def _resolve_relative(module_name: str, is_package: bool, level: int, target: str | None) -> str:
    base = module_name.split(".")
    if not is_package:
        base = base[:-1]
    if level > 1:
        base = base[: len(base) - (level - 1)]
    return ".".join([*base, target] if target else base)


class _SourceChecker(ast.NodeVisitor):
    def __init__(self, path: Path, module_name: str, plugins: frozenset[str], name_pattern: re.Pattern[str]) -> None:
        self.path = path
        self.module_name = module_name
        self.is_package = path.name == "__init__.py"
        self.plugins = plugins
        self.name_pattern = name_pattern
        self.violations: list[Violation] = []

    def _report(self, node: ast.AST, kind: str, detail: str) -> None:
        self.violations.append(Violation(self.path, getattr(node, "lineno", 0), kind, detail))

    def _check_module(self, node: ast.AST, module: str) -> None:
        prefix = f"{PLUGIN_PACKAGE}."
        if module.startswith(prefix) and module[len(prefix) :].split(".")[0] in self.plugins:
            self._report(node, "import", f"imports plugin package {module}")

    def visit_Import(self, node: ast.Import) -> None:
        for alias in node.names:
            self._check_module(node, alias.name)

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        module = node.module or ""
        if node.level:
            module = _resolve_relative(self.module_name, self.is_package, node.level, node.module)
        self._check_module(node, module)
        if module == PLUGIN_PACKAGE:
            for alias in node.names:
                self._check_module(node, f"{module}.{alias.name}")

    def _check_identifier(self, node: ast.AST, identifier: str) -> None:
        if any(part in self.plugins for part in identifier.lower().split("_")):
            self._report(node, "identifier", identifier)

    def visit_Name(self, node: ast.Name) -> None:
        self._check_identifier(node, node.id)

    def visit_Attribute(self, node: ast.Attribute) -> None:
        self._check_identifier(node, node.attr)
        self.generic_visit(node)

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._check_identifier(node, node.name)
        self.generic_visit(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._check_identifier(node, node.name)
        self.generic_visit(node)

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        self._check_identifier(node, node.name)
        self.generic_visit(node)

    def visit_arg(self, node: ast.arg) -> None:
        self._check_identifier(node, node.arg)
        self.generic_visit(node)

    def visit_Constant(self, node: ast.Constant) -> None:
        if isinstance(node.value, str) and (match := self.name_pattern.search(node.value)):
            self._report(node, "string", f"mentions {match.group(0)!r}")


def check_source(
    source: str,
    path: Path,
    *,
    module_name: str,
    plugins: frozenset[str],
) -> list[Violation]:
    """Return the provider isolation violations in one module's source."""
    if not plugins:
        return []
    name_pattern = re.compile(rf"\b(?:{'|'.join(sorted(map(re.escape, plugins)))})\b", re.IGNORECASE)
    checker = _SourceChecker(path, module_name, plugins, name_pattern)
    checker.visit(ast.parse(source, filename=str(path)))

    for token in tokenize.generate_tokens(io.StringIO(source).readline):
        if token.type == tokenize.COMMENT and (match := name_pattern.search(token.string)):
            checker.violations.append(Violation(path, token.start[0], "comment", f"mentions {match.group(0)!r}"))
    return sorted(checker.violations)


def check_package(package_root: Path) -> list[Violation]:
    """Check every shared module of the package rooted at ``package_root``."""
    plugins = find_plugin_names(package_root)
    violations: list[Violation] = []
    for path in shared_modules(package_root):
        violations.extend(
            check_source(
                path.read_text(encoding="utf-8"),
                path,
                module_name=_module_name(package_root, path),
                plugins=plugins,
            )
        )
    return violations


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0] if __doc__ else None)
    _ = parser.add_argument(
        "--package-root",
        type=Path,
        default=DEFAULT_ROOT,
        help=f"Directory of the {PACKAGE} package (default: %(default)s)",
    )
    args = parser.parse_args(argv)
    package_root: Path = args.package_root

    if not (package_root / "plugins").is_dir():
        print(f"error: {package_root} has no plugins/ directory", file=sys.stderr)
        return 2

    try:
        violations = check_package(package_root)
    except (OSError, SyntaxError, tokenize.TokenError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    plugins = ", ".join(sorted(find_plugin_names(package_root)))
    if not violations:
        print(f"Shared modules are provider-agnostic (plugins: {plugins})")
        return 0

    for violation in violations:
        location = violation.path.relative_to(package_root.parent)
        print(f"{location}:{violation.line}: {violation.kind}: {violation.detail}")
    print(f"\n{len(violations)} provider isolation violation(s); move provider code into plugins/<name>/")
    return 1


if __name__ == "__main__":
    sys.exit(main())
