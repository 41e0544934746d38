"""Command templates for external signing tools.

Templates come from operator configuration only and are a trusted-input
surface: values are substituted literally, with no shell escaping. Never
build a template from request data.

Two resolvers are provided. ``resolve_command`` performs plain literal
substring replacement; its result is kept on ``SigningCommand.resolved``
for inspection only and is never logged, since it carries passwords.
``build_argv`` is what actually runs: the template is split into arguments
first and each argument is substituted in a single pass, so a value can
neither split into several arguments nor be re-expanded when it contains
another placeholder's text.
"""

from __future__ import annotations

import logging
import re
import shlex
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

PLACEHOLDERS = (
    "input",
    "output",
    "cert",
    "key",
    "keyPassword",
    "pfx",
    "pfxPassword",
    "signerName",
    "reason",
    "location",
)
BYPASS_TEMPLATES = {"copy", "noop"}

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{(" + "|".join(PLACEHOLDERS) + r")\}")

Bindings = Mapping[str, Optional[str]]


def is_bypass_template(template: str | None) -> bool:
    return str(template or "").strip().lower() in BYPASS_TEMPLATES


def resolve_command(template: str, bindings: Bindings) -> str:
    command = str(template)
    for name in PLACEHOLDERS:
        command = command.replace("{" + name + "}", str(bindings.get(name) or ""))
    return command


def build_argv(template: str, bindings: Bindings) -> List[str]:
    def substitute(match: re.Match) -> str:
        return str(bindings.get(match.group(1)) or "")

    return [_PLACEHOLDER_RE.sub(substitute, token) for token in shlex.split(str(template))]


@dataclass(frozen=True)
class SigningCommand:
    template: str
    resolved: str
    argv: List[str] = field(default_factory=list)

    @property
    def is_bypass(self) -> bool:
        return is_bypass_template(self.template)

    @property
    def program(self) -> str:
        return self.argv[0] if self.argv else ""

    @classmethod
    def from_template(cls, template: str, bindings: Bindings) -> "SigningCommand":
        if is_bypass_template(template):
            return cls(template=template, resolved=str(template).strip(), argv=[])
        try:
            argv = build_argv(template, bindings)
        except ValueError as exc:
            # unbalanced quotes; the invoker reports an empty argv as a failed run
            logger.error("Unparseable signing command template: %s", exc)
            argv = []
        return cls(template=template, resolved=resolve_command(template, bindings), argv=argv)
