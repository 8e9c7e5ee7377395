"""
Import-alias hints and signature helpers for reference resolution.

Import symbols record where a local name comes from in their signature,
as `<module>|export=<name>`. The resolver uses these records to favour
definitions living in the imported module and to look definitions up
under their exported name when the local alias differs.
"""

import posixpath
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from codegraph.extraction.python_adapter import module_name_for
from codegraph.graph.entities import NodeKind, Symbol

_EXPORT_MARKER = "|export="


@dataclass(frozen=True)
class ImportHint:
    """Where a locally bound name was imported from."""

    local_name: str
    module: str
    export: Optional[str] = None

    @property
    def lookup_name(self) -> str:
        """The name the definition carries in its own module."""
        return self.export or self.local_name


def parse_import_signature(signature: Optional[str]) -> Optional[Tuple[str, Optional[str]]]:
    """
    Split an import signature into (module, exported name).

    Returns:
        Tuple of module and export name (None for whole-module imports),
        or None if the signature is not an import signature.
    """
    if not signature or _EXPORT_MARKER not in signature:
        return None
    module, export = signature.split(_EXPORT_MARKER, 1)
    return module, export or None


def hints_from_imports(imports: List[Symbol]) -> Dict[str, ImportHint]:
    """Index the import symbols of one file by their local name."""
    hints: Dict[str, ImportHint] = {}
    for symbol in imports:
        if symbol.kind != NodeKind.IMPORT:
            continue
        parsed = parse_import_signature(symbol.signature)
        if parsed is None:
            continue
        module, export = parsed
        hints.setdefault(symbol.name, ImportHint(symbol.name, module, export))
    return hints


def path_matches_module(file_path: str, module: str) -> bool:
    """
    Whether a file is (or sits at the end of) the given dotted module.

    `src/pkg/util.py` matches `pkg.util` as well as `src.pkg.util`.
    """
    if not module:
        return False
    file_module = module_name_for(file_path)
    return file_module == module or file_module.endswith("." + module)


def module_file_paths(module: str) -> List[str]:
    """Relative file paths a dotted module name may live at."""
    base = module.replace(".", "/")
    return [
        f"{base}.py",
        f"{base}.pyi",
        posixpath.join(base, "__init__.py"),
    ]


def signature_arity(signature: Optional[str]) -> Optional[Tuple[int, Optional[int]]]:
    """
    Accepted argument count range of a callable signature.

    Receiver parameters (`self`, `cls`) and the `*` and `/` markers do not
    count. Parameters with defaults only raise the maximum; `*args` or
    `**kwargs` remove it.

    Args:
        signature: Text such as `(self, a, b=1, *args) -> int`.

    Returns:
        (minimum, maximum) with maximum None when unbounded, or None if
        the signature does not describe parameters.
    """
    if not signature or not signature.startswith("("):
        return None

    depth = 0
    end = None
    for index, char in enumerate(signature):
        if char in "([{":
            depth += 1
        elif char in ")]}":
            depth -= 1
            if depth == 0:
                end = index
                break
    if end is None:
        return None

    params = _split_top_level(signature[1:end])
    minimum, maximum = 0, 0
    unbounded = False
    for index, param in enumerate(params):
        name = param.split(":", 1)[0].split("=", 1)[0].strip()
        if not name or name in ("*", "/"):
            continue
        if index == 0 and name in ("self", "cls"):
            continue
        if name.startswith("**") or name.startswith("*"):
            unbounded = True
            continue
        maximum += 1
        if "=" not in param:
            minimum += 1

    return minimum, None if unbounded else maximum


def arity_matches(signature: Optional[str], arity: Optional[int]) -> bool:
    """Whether a call with `arity` arguments fits the signature."""
    if arity is None:
        return False
    bounds = signature_arity(signature)
    if bounds is None:
        return False
    minimum, maximum = bounds
    return arity >= minimum and (maximum is None or arity <= maximum)


def _split_top_level(text: str) -> List[str]:
    parts, depth, current = [], 0, []
    for char in text:
        if char in "([{":
            depth += 1
        elif char in ")]}":
            depth -= 1
        if char == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    tail = "".join(current).strip()
    if tail:
        parts.append(tail)
    return parts
