import re

"""
pydmongo.naming
===============
Small inflection helpers used to derive collection names and
association targets from class names.

Only the handful of English rules that class names realistically need
are covered; anything unusual should set ``__collection_name__``
explicitly.
"""

_ES_SUFFIXES = ("s", "x", "z", "ch", "sh")
_VOWELS = "aeiou"


def camel_to_snake(name: str) -> str:
    """Convert CamelCase to snake_case (``BloggyPoo`` → ``bloggy_poo``)."""
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", name)
    s2 = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1)
    return s2.lower()


def snake_to_camel(name: str) -> str:
    """Convert snake_case to CamelCase (``chat_room`` → ``ChatRoom``)."""
    return "".join(part[:1].upper() + part[1:] for part in name.split("_") if part)


def pluralize(word: str) -> str:
    if not word:
        return word
    if word.endswith(_ES_SUFFIXES):
        return word + "es"
    if word.endswith("y") and len(word) > 1 and word[-2] not in _VOWELS:
        return word[:-1] + "ies"
    return word + "s"


def namespace_segments(qualname: str) -> list[str]:
    """
    Split a ``__qualname__`` into namespace segments, outermost first.

    Classes declared inside a function carry ``<locals>`` markers; the
    enclosing function path is not a namespace and is dropped.
    """
    segments = qualname.split(".")
    if "<locals>" in segments:
        last = len(segments) - 1 - segments[::-1].index("<locals>")
        segments = segments[last + 1 :]
    return segments


def tableize(qualname: str) -> str:
    """
    Derive a collection name from a class qualname.

    Every segment is snake_cased, the innermost one is pluralised, and
    segments are joined with ``.``::

        >>> tableize("BloggyPoo.Post")
        'bloggy_poo.posts'
        >>> tableize("Item")
        'items'
    """
    segments = [camel_to_snake(s) for s in namespace_segments(qualname)]
    segments[-1] = pluralize(segments[-1])
    return ".".join(segments)
