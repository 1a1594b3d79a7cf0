"""Directive scanning for package references embedded in source text."""

import re
from dataclasses import dataclass, field
from typing import List

from constants import Constants

from .models import Directive, ResolutionError, ResolutionErrorKind

_SCHEME = re.escape(Constants.DIRECTIVE_SCHEME)
STRICT_DIRECTIVE = re.compile(rf'#r\s+"{_SCHEME}:\s*([^,"]+),\s*([^"]+)"')
LOOSE_DIRECTIVE = re.compile(rf'#r\s+"{_SCHEME}:[^"]*"')


@dataclass
class ParseResult:
    """Valid directives in first-occurrence order plus malformed-directive errors."""
    directives: List[Directive] = field(default_factory=list)
    errors: List[ResolutionError] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.directives and not self.errors


def parse_directives(source: str) -> ParseResult:
    """Scan ``source`` for package directives.

    Every loose match must also satisfy the strict two-field form; anything
    else is reported as a malformed directive carrying the offending text.
    Duplicate (name, version) pairs are kept once.
    """
    result = ParseResult()
    seen = set()
    for match in LOOSE_DIRECTIVE.finditer(source):
        text = match.group(0)
        strict = STRICT_DIRECTIVE.fullmatch(text)
        name = strict.group(1).strip() if strict else ""
        version = strict.group(2).strip() if strict else ""
        if not name or not version:
            result.errors.append(
                ResolutionError(
                    package_id=name,
                    requested_version=version,
                    message=text,
                    kind=ResolutionErrorKind.MALFORMED_DIRECTIVE,
                )
            )
            continue
        directive = Directive(name=name, version=version, text=text)
        if directive.identity.key in seen:
            continue
        seen.add(directive.identity.key)
        result.directives.append(directive)
    return result


def strip_directives(source: str) -> str:
    """Remove directive text in place so line numbers are unchanged."""
    return LOOSE_DIRECTIVE.sub("", source)
