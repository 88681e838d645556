# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/utils/naming.py
from __future__ import annotations


def increment_count(name: str, sep: str) -> str:
    """
    Bump the numeric suffix of *name*.

        increment_count("foo", "-")    -> "foo-1"
        increment_count("foo-3", "-")  -> "foo-4"
        increment_count("foo-03", "-") -> "foo-04"

    Zero padding is kept; a suffix that overflows its width just grows.
    """
    base, found, suffix = name.rpartition(sep)
    if not found or not suffix.isdigit():
        return f"{name}{sep}1"

    bumped = str(int(suffix) + 1).zfill(len(suffix))
    return f"{base}{sep}{bumped}"
