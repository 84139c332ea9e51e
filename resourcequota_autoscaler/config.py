"""Configuration settings for the ResourceQuota Autoscaler."""

# CRD Settings
CRD_GROUP = "k8s-resourcequota-autoscaler.m21r.de"
CRD_VERSION = "v1beta1"
CRD_PLURAL = "managedresourcequota"
CRD_KIND = "ManagedResourceQuota"

# Labels set on managed ResourceQuotas
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "k8s-resourcequota-autoscaler"
NAME_LABEL = "app.kubernetes.io/name"

# Status phases written to ManagedResourceQuota objects
PHASE_READY = "Ready"
PHASE_ERROR = "Error"

# Watch settings
WATCH_TIMEOUT_SECONDS = 300
WATCH_RETRY_SECONDS = 5
RESYNC_INTERVAL_SECONDS = 300

# Timeout for a single API request (seconds)
REQUEST_TIMEOUT_SECONDS = 30

# Node listing page size
NODE_LIST_PAGE_SIZE = 500

# Worker settings
DEFAULT_WORKERS = 2

# Retry backoff for failed reconciliations
RETRY_BASE_DELAY_SECONDS = 0.5
RETRY_MAX_DELAY_SECONDS = 300
