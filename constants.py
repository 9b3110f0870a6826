# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Constants and configuration for the NodeNetworkConfig reconciler.

This module contains all constants used across the application:
- Node identity configuration
- Custom resource coordinates (NodeNetworkConfig, MultiTenantNetworkContainer)
- Watch manager timing configuration
- Local network service (CNS) client configuration
"""

# ============================================================================
# Node Identity
# ============================================================================
# Environment variable carrying the name of the node running this agent.
# Usually populated from the downward API (spec.nodeName).
NODE_NAME_ENV_VAR = "NODENAME"

# ============================================================================
# NodeNetworkConfig CR Configuration
# ============================================================================
# One NodeNetworkConfig per node, named after the node, in kube-system.
NNC_GROUP = "acn.azure.com"
NNC_VERSION = "v1alpha"
NNC_PLURAL = "nodenetworkconfigs"
NNC_KIND = "NodeNetworkConfig"
NNC_NAMESPACE = "kube-system"

# ============================================================================
# MultiTenantNetworkContainer CR Configuration
# ============================================================================
MTNC_GROUP = "multitenancy.acn.azure.com"
MTNC_VERSION = "v1alpha1"
MTNC_PLURAL = "multitenantnetworkcontainers"
MTNC_KIND = "MultiTenantNetworkContainer"
# Empty string = all namespaces
MTNC_NAMESPACE = ""
# status.state value once the NC is provisioned and safe to hand to CNS
MTNC_STATE_SUCCEEDED = "Succeeded"

# Pods are listed across all namespaces during cold start
ALL_NAMESPACES = ""

# ============================================================================
# Watch Manager Configuration
# ============================================================================
# Server-side watch timeout. When it expires the manager relists the
# resource and reconciles every cached object again (periodic resync).
WATCH_RESYNC_PERIOD: int = 300  # seconds

# Reconnect backoff for watch failures
WATCH_RETRY_DELAY: float = 5.0  # seconds
WATCH_MAX_RETRY_DELAY: float = 300.0  # seconds (5 minutes)

# How often start() checks the watch thread for a fatal error
MANAGER_POLL_INTERVAL: float = 0.5  # seconds

# Maximum time the cached client waits for the first list to complete
CACHE_SYNC_TIMEOUT: float = 30.0  # seconds

# Time to wait for the watch thread to exit on shutdown
WATCH_STOP_TIMEOUT: float = 10.0  # seconds

# ============================================================================
# Local Network Service (CNS) Configuration
# ============================================================================
CNS_URL = "http://localhost:10090"
CNS_RECONCILE_NC_STATE_PATH = "/network/reconcilencstate"
CNS_CREATE_OR_UPDATE_NC_PATH = "/network/createorupdatenetworkcontainer"
CNS_DELETE_NC_PATH = "/network/deletenetworkcontainer"
CNS_REQUEST_TIMEOUT: float = 10.0  # seconds

# NetworkContainerType values understood by CNS
NC_TYPE_DOCKER = "Docker"
NC_TYPE_KUBERNETES = "Kubernetes"

# ============================================================================
# Process
# ============================================================================
# Exit code used when the custom resource kind is not served by the cluster
EXIT_FATAL = 1
