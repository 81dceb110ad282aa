"""Lookup of registered papers by a typed paper_id prefix.

Paper ids are the slugs built by ``generate_paper_id`` (``neet-2022``,
``jee-main-2023-shift-1``). On the command line the operator may type any
unambiguous start of one, in any case and with spaces for hyphens:
``NEET``, ``jee main 2023 shift 2``.
"""

import re

_SEPARATORS = re.compile(r"[\s_]+")


class PaperNotFoundError(Exception):
    """No registered paper starts with the typed prefix."""

    def __init__(self, prefix: str):
        self.prefix = prefix
        super().__init__(f"No paper found with prefix '{prefix}'")


class AmbiguousPaperIdError(Exception):
    """The typed prefix starts more than one registered paper_id."""

    def __init__(self, prefix: str, candidates: list[str]):
        self.prefix = prefix
        self.candidates = candidates
        listing = "\n".join(f"  - {paper_id}" for paper_id in candidates)
        super().__init__(
            f"Prefix '{prefix}' is ambiguous; {len(candidates)} papers match:\n{listing}"
        )


def _as_slug_prefix(text: str) -> str:
    return _SEPARATORS.sub("-", text.strip().lower())


def resolve_paper_id(prefix: str, candidates: list[str]) -> str:
    """Return the one paper_id in ``candidates`` that ``prefix`` designates.

    An exact id wins even when it also starts longer ids
    (``jee-main-2023`` next to ``jee-main-2023-2``).

    Raises:
        PaperNotFoundError: Nothing starts with the prefix
        AmbiguousPaperIdError: Several ids start with it
    """
    wanted = _as_slug_prefix(prefix)
    if wanted in candidates:
        return wanted

    matches = sorted(paper_id for paper_id in candidates if paper_id.startswith(wanted))
    if not matches:
        raise PaperNotFoundError(prefix)
    if len(matches) > 1:
        raise AmbiguousPaperIdError(prefix, matches)
    return matches[0]
