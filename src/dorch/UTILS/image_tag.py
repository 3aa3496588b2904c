"""
Parsing of "repository:tag" strings used for secondary tags and pushes.
"""
from typing import Optional, Tuple


def split_tag(reference: str) -> Tuple[str, Optional[str]]:
    """
    Splits a reference on its last colon into repository and tag.

    A colon followed by a path segment belongs to a registry host
    (e.g. localhost:5000/app) and is not a tag separator.

    :param reference: Reference such as "myrepo/app:v2".
    :return: (repository, tag); tag is None when the reference has no tag.
    """
    last_colon = reference.rfind(":")
    if last_colon == -1:
        return reference, None
    tag = reference[last_colon + 1:]
    if "/" in tag:
        return reference, None
    return reference[:last_colon], tag


def repository_of(reference: str) -> str:
    """
    Returns the reference with any trailing ":tag" removed.
    """
    return split_tag(reference)[0]
