import difflib
import typing


def normalise(content: str) -> typing.List[str]:
    """
    Splits the content into lines with surrounding whitespace removed and inner runs of
    whitespace collapsed to a single space.
    """
    return [" ".join(line.split()) for line in content.splitlines()]


def has_changed(previous: str, new: str) -> bool:
    """
    Returns True if the new content differs materially from the previous content.

    Differences in indentation, trailing whitespace, the amount of whitespace between
    tokens and line endings are not material.
    """
    return normalise(previous) != normalise(new)


def unified_diff(previous: str, new: str, filename: str) -> str:
    """
    Returns a unified diff of the change from the previous to the new content.
    """
    return "".join(
        difflib.unified_diff(
            previous.splitlines(keepends = True),
            new.splitlines(keepends = True),
            fromfile = f"{filename} (previous)",
            tofile = f"{filename} (new)"
        )
    )
