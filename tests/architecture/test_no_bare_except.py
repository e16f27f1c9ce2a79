"""Architecture gate: no bare ``except:`` or silently swallowed exceptions.

Scans all Python files under ``src/vnfpsa/`` and rejects:

1. **Bare ``except:``** -- always use a specific exception type.
2. **Silent swallow** -- ``except SomeError: pass`` with no logging,
   re-raise, or any other statement.
"""

from __future__ import annotations

import ast
from pathlib import Path


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _is_silent_swallow(handler: ast.ExceptHandler) -> bool:
    return len(handler.body) == 1 and isinstance(handler.body[0], ast.Pass)


class _ExceptScanner(ast.NodeVisitor):
    """Walk an AST and collect problematic exception handlers."""

    def __init__(self, rel_path: str) -> None:
        self.rel_path = rel_path
        self.violations: list[str] = []

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
        if node.type is None:
            self.violations.append(f"{self.rel_path}:{node.lineno}: bare except: (always specify an exception type)")
        elif _is_silent_swallow(node):
            self.violations.append(f"{self.rel_path}:{node.lineno}: silent swallow (except ... : pass)")
        self.generic_visit(node)


def test_no_bare_except_in_library() -> None:
    repo_root = _repo_root()
    src_root = repo_root / "src" / "vnfpsa"
    violations: list[str] = []

    for path in sorted(src_root.rglob("*.py")):
        rel_path = path.relative_to(repo_root).as_posix()
        scanner = _ExceptScanner(rel_path)
        scanner.visit(ast.parse(path.read_text(encoding="utf-8-sig")))
        violations.extend(scanner.violations)

    if violations:
        header = [
            "Exception handling violations detected:",
            "  1. Never use bare 'except:' -- always specify an exception type.",
            "  2. Never silently swallow exceptions with 'except ...: pass'.",
            "",
        ]
        header.extend(f"- {v}" for v in sorted(violations))
        raise AssertionError("\n".join(header))
