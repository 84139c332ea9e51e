"""ResourceQuota Autoscaler - scales ResourceQuotas with the cluster's node count."""

__version__ = "0.1.0"
