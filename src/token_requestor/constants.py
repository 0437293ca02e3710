"""
Constants used throughout the token requestor.

This module defines all constant values used by the controller including:
- The opt-in label and the finalizer guarding cleanup
- Annotation keys read from and written to carrier Secrets
- Payload keys of the two credential formats
- Token lifetime defaults and the renewal fraction
"""

from datetime import timedelta

# Label marking a Secret as managed by the token requestor
PURPOSE_LABEL_KEY = "resources.gardener.cloud/purpose"
PURPOSE_TOKEN_REQUESTOR = "token-requestor"

# Finalizer guarding ServiceAccount cleanup on Secret removal
TOKEN_REQUESTOR_FINALIZER = "resources.gardener.cloud/token-requestor"

# Annotation constants (all live under the service account prefix)
ANNOTATION_PREFIX = "serviceaccount.resources.gardener.cloud/"
SERVICE_ACCOUNT_NAME_ANNOTATION = ANNOTATION_PREFIX + "name"
SERVICE_ACCOUNT_NAMESPACE_ANNOTATION = ANNOTATION_PREFIX + "namespace"
TOKEN_RENEW_TIMESTAMP_ANNOTATION = ANNOTATION_PREFIX + "token-renew-timestamp"
TOKEN_EXPIRATION_DURATION_ANNOTATION = ANNOTATION_PREFIX + "token-expiration-duration"
SKIP_DELETION_ANNOTATION = ANNOTATION_PREFIX + "skip-deletion"
TOKEN_ISSUED_FOR_ANNOTATION = ANNOTATION_PREFIX + "token-issued-for"

# Payload keys of the carrier Secret
DATA_KEY_TOKEN = "token"
DATA_KEY_KUBECONFIG = "kubeconfig"

# Token lifetime configuration
DEFAULT_TOKEN_EXPIRATION = timedelta(hours=12)
MAX_TOKEN_EXPIRATION = timedelta(hours=24)
RENEW_FRACTION = 0.8

# Resource type used in logs and metrics
RESOURCE_TYPE_SECRET = "secret"

# Event types delivered by the watch stream
WATCH_EVENT_DELETED = "DELETED"

# Error message templates
ERROR_MISSING_ANNOTATION = "Secret is missing required annotation '{}'"
ERROR_INVALID_DURATION = "invalid duration '{}'"
ERROR_INVALID_RENEW_TIMESTAMP = "could not parse renew timestamp '{}'"
ERROR_KUBECONFIG_DECODE = "could not decode kubeconfig: {}"
ERROR_KUBECONFIG_USER = "could not determine the kubeconfig user to update: {}"
