"""Instruction rendering with Jinja2 templates.

Prompt parts are Jinja2 templates rendered once per input.  Template
variables available:

- ``data``   : value returned by the Data script (``None`` without one)
- ``input``  : the raw input value
- ``shared`` : value shared by the Before-All script
- ``CTX``    : path literals (``CTX.AGENT_FILE_DIR``, ...)

Unknown names, missing attributes and ``None`` values render as empty
strings rather than failing, so ``{{ data.title }}`` is safe when ``data`` is ``None``.

Example template::

    Fix the typos in {{ data.path }}.
    {% if data.lang == "rust" %}Keep the doc comments.{% endif %}

    {{ data.content }}
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from functools import lru_cache
from typing import Any

import jinja2

from agentloop.agent_runtime.errors import RenderError
from agentloop.agent_runtime.models.agent import PromptPart

_env = jinja2.Environment(  # noqa: S701
    autoescape=False,
    undefined=jinja2.ChainableUndefined,
    keep_trailing_newline=True,
    finalize=lambda value: "" if value is None else value,
)


@lru_cache(maxsize=128)
def _compile(template: str) -> jinja2.Template:
    return _env.from_string(template)


def render_template(template: str, data: Mapping[str, Any]) -> str:
    """Render *template* against *data*.

    Raises
    ------
    RenderError:
        The template has a syntax error or raised while rendering.
    """
    # Fast path: skip Jinja2 if no template syntax detected
    if "{{" not in template and "{%" not in template and "{#" not in template:
        return template

    try:
        return _compile(template).render(**data)
    except jinja2.TemplateError as err:
        raise RenderError(f"Failed to render instruction: {err}") from err


def render_prompt_parts(parts: Sequence[PromptPart], data: Mapping[str, Any]) -> list[PromptPart]:
    """Render every part; parts that are blank after rendering are dropped."""
    rendered: list[PromptPart] = []
    for part in parts:
        content = render_template(part.content, data)
        if content.strip():
            rendered.append(PromptPart(kind=part.kind, content=content))
    return rendered
