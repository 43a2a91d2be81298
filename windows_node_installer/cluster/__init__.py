"""Read-only access to the target OpenShift cluster."""
