"""
helm-crd is a controller that installs Helm charts requested by HelmRelease
custom resources through the Helm v2 release manager.
"""

__all__ = [
    "chart_repo",
    "controller",
    "manifest",
    "helm",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
