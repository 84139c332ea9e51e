"""Rendering of ManagedResourceQuota limit expressions."""

import logging
import math
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Mapping, Optional

import jinja2
from jinja2.sandbox import SandboxedEnvironment

from .errors import RenderError
from .utils import Quantity

logger = logging.getLogger(__name__)

# Go-template style field reference, e.g. "{{ .Nodes }}"
_TEMPLATE_BLOCK = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
# Go-template style prefix call with plain arguments, e.g. "{{ mul .Nodes 2 }}"
_PREFIX_CALL = re.compile(
    r"^(\s*)([A-Za-z_]\w*)((?:\s+(?:\"[^\"]*\"|'[^']*'|[^\s\"'()|,]+))+)(\s*)$"
)
_PREFIX_ARG = re.compile(r"\"[^\"]*\"|'[^']*'|[^\s]+")
_DOT_FIELD = re.compile(r"(^|[\s(,|+\-*/])\.(Nodes)\b")


@dataclass(frozen=True)
class RenderContext:
    """Values available to limit expressions."""
    nodes: int

    def as_template_vars(self) -> Dict[str, Any]:
        return {"Nodes": self.nodes}


def _to_int(value) -> int:
    if isinstance(value, int):
        return int(value)
    return int(Decimal(str(value).strip()))


def _div(a, b) -> int:
    # Go integer division truncates toward zero
    a, b = _to_int(a), _to_int(b)
    quotient = abs(a) // abs(b)
    return quotient if (a >= 0) == (b >= 0) else -quotient


def _mod(a, b) -> int:
    a, b = _to_int(a), _to_int(b)
    return a - b * _div(a, b)


def _default(default, value=None):
    return value if value else default


FUNCTIONS: Dict[str, Callable] = {
    "add": lambda *args: sum(_to_int(a) for a in args),
    "add1": lambda a: _to_int(a) + 1,
    "sub": lambda a, b: _to_int(a) - _to_int(b),
    "mul": lambda *args: math.prod(_to_int(a) for a in args),
    "div": _div,
    "mod": _mod,
    "max": lambda *args: max(_to_int(a) for a in args),
    "min": lambda *args: min(_to_int(a) for a in args),
    "addf": lambda *args: sum(float(a) for a in args),
    "subf": lambda a, b: float(a) - float(b),
    "mulf": lambda *args: math.prod(float(a) for a in args),
    "divf": lambda a, b: float(a) / float(b),
    "ceil": lambda a: math.ceil(float(a)),
    "floor": lambda a: math.floor(float(a)),
    "round": lambda a, precision=0: round(float(a), int(precision)),
    "int": _to_int,
    "float64": float,
    "toString": str,
    "trim": lambda s: str(s).strip(),
    "upper": lambda s: str(s).upper(),
    "lower": lambda s: str(s).lower(),
    "replace": lambda s, old, new: str(s).replace(old, new),
    "default": _default,
}


class JinjaEvaluator:
    """
    Evaluates expressions as sandboxed Jinja2 templates.

    The render context is exposed as template variables and the
    function library as both globals and filters, so ``{{ mul(Nodes, 2) }}``
    and ``{{ Nodes | mul(2) }}`` are equivalent. Go-template style
    ``.Nodes`` references are accepted as an alias for ``Nodes``, and a
    block holding a single prefix call with plain arguments, such as
    ``{{ mul .Nodes 2 }}``, is rewritten to ``{{ mul(Nodes, 2) }}``.
    Nested or piped Go calls are not translated.
    """

    def __init__(self, functions: Optional[Mapping[str, Callable]] = None):
        functions = dict(FUNCTIONS if functions is None else functions)
        self._env = SandboxedEnvironment(
            undefined=jinja2.StrictUndefined,
            autoescape=False,
        )
        self._function_names = frozenset(functions)
        self._env.globals.update(functions)
        for name, function in functions.items():
            # Jinja's own filters (int, round, default, ...) keep their semantics
            self._env.filters.setdefault(name, function)

    @staticmethod
    def normalize(expression: str, function_names=frozenset(FUNCTIONS)) -> str:
        """Rewrite Go-template calls and field references into Jinja syntax."""
        def rewrite(match):
            body = match.group(1)
            call = _PREFIX_CALL.match(body)
            if call and call.group(2) in function_names:
                args = ", ".join(_PREFIX_ARG.findall(call.group(3)))
                body = f"{call.group(1)}{call.group(2)}({args}){call.group(4)}"
            return "{{" + _DOT_FIELD.sub(r"\1\2", body) + "}}"

        return _TEMPLATE_BLOCK.sub(rewrite, expression)

    def evaluate(self, expression: str, context: RenderContext) -> str:
        template = self._env.from_string(self.normalize(expression, self._function_names))
        return template.render(**context.as_template_vars())


_default_evaluator = JinjaEvaluator()


class Renderer:
    """Renders a template's hard limits for a given node count."""

    def __init__(self, evaluator=None):
        """
        Initialize the renderer.

        Args:
            evaluator: Object with ``evaluate(expression, context) -> str``.
                Defaults to the shared JinjaEvaluator.
        """
        self.evaluator = evaluator or _default_evaluator

    def render(self, expressions: Mapping[str, str], node_count: int) -> Dict[str, Quantity]:
        """
        Render every limit expression into a quantity.

        Args:
            expressions: Mapping of resource name to limit expression
            node_count: Current number of nodes in the cluster

        Returns:
            Mapping of resource name to rendered Quantity

        Raises:
            RenderError: if any single expression fails to evaluate or
                does not produce a valid quantity
        """
        context = RenderContext(nodes=node_count)
        rendered = {}

        for name, expression in expressions.items():
            expression = str(expression)
            try:
                text = self.evaluator.evaluate(expression, context)
            except jinja2.TemplateError as e:
                raise RenderError(name, expression, str(e)) from e
            except Exception as e:
                raise RenderError(name, expression, f"{type(e).__name__}: {e}") from e

            try:
                rendered[name] = Quantity.parse(text)
            except ValueError as e:
                raise RenderError(name, expression, f"{str(text).strip()!r} is not a valid quantity") from e

            logger.debug(f"Rendered {name}: {expression!r} -> {rendered[name]}")

        return rendered


def render(expressions: Mapping[str, str], node_count: int) -> Dict[str, Quantity]:
    """Render limit expressions with the default evaluator."""
    return Renderer().render(expressions, node_count)
