from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

from .service_keys import CredentialRecord

ORG_PREFIX = "cf_o/"
SPACE_PREFIX = "cf_s/"
INSTANCE_PREFIX = "cf_i/"


@dataclass(frozen=True)
class RewriteRule:
    prefix: str
    backend_path: Callable[[CredentialRecord], str]

    def apply(self, arg: str, creds: CredentialRecord) -> str | None:
        if not arg.startswith(self.prefix):
            return None
        return f"{self.backend_path(creds)}/{arg[len(self.prefix):]}"


# Checked in order; the prefixes are mutually exclusive.
REWRITE_RULES: tuple[RewriteRule, ...] = (
    RewriteRule(ORG_PREFIX, lambda c: c.shared_org_path),
    RewriteRule(SPACE_PREFIX, lambda c: c.shared_space_path),
    RewriteRule(INSTANCE_PREFIX, lambda c: c.generic_backend_path),
)


def rewrite_arg(arg: str, creds: CredentialRecord) -> str:
    for rule in REWRITE_RULES:
        out = rule.apply(arg, creds)
        if out is not None:
            return out
    return arg


def rewrite_args(args: Sequence[str], creds: CredentialRecord) -> list[str]:
    """Expand ``cf_o/``, ``cf_s/`` and ``cf_i/`` aliases into backend paths.

    Every argument maps to exactly one output argument. An empty backend
    path is substituted as-is.
    """
    return [rewrite_arg(a, creds) for a in args]
