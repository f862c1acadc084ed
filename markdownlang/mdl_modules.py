"""
Resolution of call targets to (Program, FunctionDeclaration), loading and
caching documents referenced by local path or URL.
"""
import inspect
import os
import sys
from typing import Callable, Dict, Optional, Tuple
from urllib.parse import urljoin, urldefrag, urlparse

import httpx

from markdownlang.mdl_datatypes import Program, FunctionDeclaration, FunctionCallStatement, ResolutionError
from markdownlang.mdl_transformer import parse

DOCUMENT_EXTENSIONS = ('.md', '.markdown')


def is_url(ref: Optional[str]) -> bool:
    return isinstance(ref, str) and ref.startswith(("http://", "https://"))


def read_document(path: str) -> str:
    """Host loader for local documents; raises FileNotFoundError when missing."""
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


async def _default_fetch(url: str):
    # mdl_http is imported on first remote call only
    from markdownlang.mdl_http import fetch_document
    return await fetch_document(url)


class ModuleCache:
    """Parsed documents keyed by absolute path or absolute URL. Never evicts."""

    def __init__(self):
        self._programs: Dict[str, Program] = {}

    def get(self, key: str) -> Optional[Program]:
        return self._programs.get(key)

    def put(self, key: str, program: Program) -> Program:
        self._programs[key] = program
        return program

    def clear(self):
        self._programs.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._programs

    def __len__(self) -> int:
        return len(self._programs)


# Process-wide cache shared by every resolver that is not given its own
module_cache = ModuleCache()


def reset_module_cache():
    """Forget every loaded document (for long-lived hosts running independent scripts)."""
    module_cache.clear()


class ModuleResolver:
    """Finds the function a call statement targets.

    `read(path) -> str` loads local documents; `fetch(url) -> (status, text)`
    (sync or async) loads remote ones and is only consulted when remote
    resolution is allowed, i.e. in asynchronous runs.
    """

    def __init__(self, cache: Optional[ModuleCache] = None,
                 read: Optional[Callable[[str], str]] = None,
                 fetch: Optional[Callable] = None):
        self.cache = cache if cache is not None else module_cache
        self.read = read or read_document
        self.fetch = fetch or _default_fetch

    def _dbg(self, *parts):
        if os.environ.get("MDLANG_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    async def resolve(self, program: Program, statement: FunctionCallStatement, *,
                      allow_remote: bool) -> Tuple[Program, FunctionDeclaration]:
        name = statement.function_name
        ref = statement.external_ref
        if not ref:
            func = program.get(name)
            if func is None:
                raise ResolutionError(f"Function '{name}' not found", statement.line)
            return program, func

        if is_url(ref) or is_url(program.origin):
            target = await self._load_remote(ref, program.origin, allow_remote, statement.line)
        else:
            target = self._load_local(ref, program.origin, statement.line)

        func = target.get(name)
        if func is None:
            raise ResolutionError(f"Function '{name}' not found in '{ref}'", statement.line)
        return target, func

    def _load_local(self, ref: str, origin: Optional[str], line: Optional[int]) -> Program:
        base = origin or os.getcwd()
        path = os.path.normpath(os.path.join(base, ref))
        cached = self.cache.get(path)
        if cached is not None:
            return cached
        try:
            source = self.read(path)
        except (OSError, UnicodeDecodeError) as e:
            raise ResolutionError(f"Cannot read document '{ref}' (resolved to '{path}'): {e}", line) from e
        self._dbg("load", path)
        program = parse(source).with_origin(os.path.dirname(path))
        return self.cache.put(path, program)

    async def _load_remote(self, ref: str, origin: Optional[str], allow_remote: bool,
                           line: Optional[int]) -> Program:
        url, _ = urldefrag(urljoin(origin, ref) if is_url(origin) else ref)
        if not allow_remote:
            raise ResolutionError(
                f"Cannot resolve '{url}' synchronously; URL imports require interpret_async", line)
        if not urlparse(url).path.lower().endswith(DOCUMENT_EXTENSIONS):
            raise ResolutionError(f"'{url}' does not reference a markdown document", line)
        cached = self.cache.get(url)
        if cached is not None:
            return cached

        self._dbg("fetch", url)
        try:
            result = self.fetch(url)
            if inspect.isawaitable(result):
                result = await result
        except (httpx.HTTPError, OSError) as e:
            raise ResolutionError(f"Failed to fetch '{url}': {e}", line) from e
        status, text = result
        if not 200 <= status < 300:
            raise ResolutionError(f"Failed to fetch '{url}': HTTP {status}", line)
        program = parse(text).with_origin(url)
        return self.cache.put(url, program)
