"""Controller reconciling HelmRelease objects with releases.

Control flow: the `Informer` keeps the store in sync, store events put keys
on the work queue and workers of the `ReleaseRequestController` hand each
key to the `Reconciler`.
"""

from .controller import ReleaseRequestController
from .reconciler import Reconciler

__all__ = [
    "Reconciler",
    "ReleaseRequestController",
]
