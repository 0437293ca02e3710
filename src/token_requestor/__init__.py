"""
Token Requestor - A Kubernetes controller for cross-cluster service account tokens.

This controller watches labelled Secrets in a source cluster and keeps them
filled with short-lived service account tokens issued by a target cluster:
- Ensures the referenced ServiceAccount exists in the target cluster
- Requests bounded-lifetime tokens and renews them at 80% of their lifetime
- Writes tokens either raw or into an embedded kubeconfig
- Cleans up ServiceAccounts through a finalizer-ordered deletion protocol
"""

__version__ = "0.1.0"
