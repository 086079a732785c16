"""
Template Registry - Lazily compiled, process-lifetime email templates

Each '{name}.html' under the template directory is compiled with Jinja2 the
first time it is requested and reused afterwards. Concurrent first use of a
name waits on a per-name lock, so a name is compiled at most once.
"""

import asyncio
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import aiofiles
from jinja2 import Environment, StrictUndefined, Template, meta, select_autoescape
from jinja2.exceptions import TemplateError, TemplateSyntaxError, UndefinedError

from app.core.exceptions import RenderFailureError, TemplateNotFoundError
from app.core.logging_config import logger


TEMPLATE_SUFFIX = ".html"
_VALID_NAME = re.compile(r"^[A-Za-z0-9_-]+$")

TemplateCompiler = Callable[[str], Template]


def build_environment() -> Environment:
    """Jinja2 environment for email HTML: autoescaped, missing variables are errors"""
    return Environment(
        autoescape=select_autoescape(default=True, default_for_string=True),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
    )


class TemplateRegistry:
    """Name -> compiled template cache. Never invalidated at runtime."""

    def __init__(self, template_dir: Union[str, Path], compiler: Optional[TemplateCompiler] = None):
        self.template_dir = Path(template_dir)
        self._environment = build_environment()
        self._compiler: TemplateCompiler = compiler or self._environment.from_string
        self._compiled: Dict[str, Template] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _template_path(self, name: str) -> Path:
        if not _VALID_NAME.match(name or ""):
            raise TemplateNotFoundError(name)
        return self.template_dir / f"{name}{TEMPLATE_SUFFIX}"

    async def _read_source(self, name: str) -> str:
        path = self._template_path(name)
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                return await f.read()
        except FileNotFoundError as e:
            raise TemplateNotFoundError(name) from e
        except OSError as e:
            logger.error(f"[Email] Template '{name}' unreadable at {path}: {e}")
            raise TemplateNotFoundError(name) from e

    async def get(self, name: str) -> Template:
        """Compiled template for a name, compiling it on first use"""
        template = self._compiled.get(name)
        if template is not None:
            return template

        lock = self._locks.setdefault(name, asyncio.Lock())
        async with lock:
            # Another caller may have compiled it while we waited
            template = self._compiled.get(name)
            if template is not None:
                return template

            source = await self._read_source(name)
            try:
                template = self._compiler(source)
            except TemplateSyntaxError as e:
                raise RenderFailureError(name, f"line {e.lineno}: {e.message}") from e

            self._compiled[name] = template
            logger.info(f"[Email] Compiled template '{name}'")
            return template

    async def render(self, name: str, context: Optional[Dict[str, Any]] = None) -> str:
        """
        Render a named template.

        Raises:
            TemplateNotFoundError: no '{name}.html' in the template directory
            RenderFailureError: syntax error, missing placeholder, or an
                expression that fails on the values given
        """
        template = await self.get(name)
        try:
            return template.render(**(context or {}))
        except UndefinedError as e:
            raise RenderFailureError(name, f"missing value: {e.message}") from e
        except TemplateError as e:
            raise RenderFailureError(name, str(e)) from e
        except Exception as e:
            # Expression errors from context values, e.g. "A" + 5 or x / 0
            raise RenderFailureError(name, f"{type(e).__name__}: {e}") from e

    def is_cached(self, name: str) -> bool:
        return name in self._compiled

    def describe(self) -> List[Dict[str, Any]]:
        """Available templates and the variables each one expects"""
        templates = []
        if not self.template_dir.is_dir():
            return templates

        for path in sorted(self.template_dir.glob(f"*{TEMPLATE_SUFFIX}")):
            name = path.stem
            if not _VALID_NAME.match(name):
                continue
            try:
                ast = self._environment.parse(path.read_text(encoding="utf-8"))
                variables = sorted(meta.find_undeclared_variables(ast))
            except TemplateSyntaxError as e:
                logger.error(f"[Email] Template '{name}' has a syntax error: {e}")
                variables = []
            templates.append({"name": name, "variables": variables})

        return templates
