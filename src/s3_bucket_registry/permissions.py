"""Filter predicates for the list queries of BucketRegistry.

A permission layer decides which buckets a caller may see and hands the
registry a predicate over BucketDetails. These builders cover the usual
conditions and compose.
"""

import re


def bucket_name_in(*names):
    allowed = frozenset(names)
    return lambda details: details.bucket in allowed


def bucket_name_matches(pattern):
    regex = re.compile(pattern)
    return lambda details: regex.fullmatch(details.bucket) is not None


def owner_in(*owners):
    allowed = frozenset(owners)
    return lambda details: details.owner in allowed


def endpoint_in(*endpoints):
    """Match on endpoint URL or endpoint name."""
    allowed = frozenset(endpoints)
    return lambda details: (
        details.endpoint in allowed or details.endpoint_name in allowed
    )


def all_of(*predicates):
    return lambda details: all(p(details) for p in predicates)


def any_of(*predicates):
    return lambda details: any(p(details) for p in predicates)


def negate(predicate):
    return lambda details: not predicate(details)
