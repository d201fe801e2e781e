"""Jinja2 rendering for outgoing email bodies (templates under app/templates/email)"""
from functools import lru_cache
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"


class TemplateRenderer:

    def __init__(self, template_dir: Path = TEMPLATE_DIR):
        # HTML templates are autoescaped, plain text ones are not
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(["html"]),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, name: str, **context: Any) -> str:
        return self.env.get_template(name).render(**context)


@lru_cache()
def get_renderer() -> TemplateRenderer:
    return TemplateRenderer()
