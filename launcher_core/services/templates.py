"""`${name}` placeholder substitution for launch arguments."""

import re
from collections.abc import Iterable, Mapping

PLACEHOLDER_PATTERN = re.compile(r"\$\{([^${}]+)\}")


def substitute(argument: str, variables: Mapping[str, str]) -> str:
    """Replace every known `${name}` in the argument.

    Unknown placeholders are left verbatim. Substitution is a single pass,
    so values that themselves contain `${...}` are not expanded again. An
    argument without `${` is returned as the same object.
    """
    if "${" not in argument:
        return argument

    def _replace(match: re.Match[str]) -> str:
        return variables.get(match.group(1), match.group(0))

    return PLACEHOLDER_PATTERN.sub(_replace, argument)


def substitute_all(arguments: Iterable[str], variables: Mapping[str, str]) -> list[str]:
    return [substitute(argument, variables) for argument in arguments]


def placeholders(argument: str) -> list[str]:
    """Names of all placeholders in the argument, in order of appearance."""
    return PLACEHOLDER_PATTERN.findall(argument)
