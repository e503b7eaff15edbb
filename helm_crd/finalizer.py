"""Helpers for managing the finalizer guarding a HelmRelease.

The finalizer is present on an object whenever the controller may have created
a release for it, so the object is not removed before the release is purged.
All helpers return a new object and never modify their argument.
"""

import dataclasses

from .manifest import ReleaseRequest

__all__ = [
    "RELEASE_FINALIZER",
    "has_finalizer",
    "add_finalizer",
    "remove_finalizer",
]

RELEASE_FINALIZER = "helm.bitnami.com/helmrelease"


def has_finalizer(obj: ReleaseRequest) -> bool:
    """Return True if the object carries the release finalizer."""
    return RELEASE_FINALIZER in (obj.finalizers or ())


def add_finalizer(obj: ReleaseRequest) -> ReleaseRequest:
    """Return a copy of the object with the release finalizer added."""
    if has_finalizer(obj):
        return dataclasses.replace(obj)
    return dataclasses.replace(
        obj, finalizers=(*(obj.finalizers or ()), RELEASE_FINALIZER)
    )


def remove_finalizer(obj: ReleaseRequest) -> ReleaseRequest:
    """Return a copy of the object with the release finalizer removed.

    The order of the remaining finalizers is not preserved: the last one takes
    the place of the removed entry.
    """
    finalizers = list(obj.finalizers or ())
    if RELEASE_FINALIZER in finalizers:
        index = finalizers.index(RELEASE_FINALIZER)
        finalizers[index] = finalizers[-1]
        finalizers.pop()
    return dataclasses.replace(obj, finalizers=tuple(finalizers) or None)
