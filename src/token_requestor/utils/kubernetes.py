"""
Kubernetes client configuration for the token requestor.

Secrets are watched and written in the source cluster, ServiceAccounts and
tokens live in the target cluster. Both are usually the same cluster; a
separate target is configured through a kubeconfig file.
"""

import logging

from kubernetes import client, config

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


def get_kubernetes_client() -> client.ApiClient:
    """
    Get the API client of the source cluster.

    Uses the in-cluster configuration when running in a pod and falls back
    to the local kubeconfig for development.

    Raises:
        ConfigurationError: If neither configuration can be loaded
    """
    try:
        config.load_incluster_config()
        logger.debug("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        try:
            config.load_kube_config()
            logger.debug("Loaded kubeconfig from local environment")
        except config.ConfigException as e:
            raise ConfigurationError(
                f"Failed to load Kubernetes configuration: {e}"
            ) from e

    return client.ApiClient()


def get_target_client(
    kubeconfig_path: str, source_client: client.ApiClient
) -> client.ApiClient:
    """
    Get the API client of the target cluster.

    Args:
        kubeconfig_path: Path of the target kubeconfig, empty for the source cluster
        source_client: Client returned when no target kubeconfig is configured

    Raises:
        ConfigurationError: If the target kubeconfig cannot be loaded
    """
    if not kubeconfig_path:
        logger.info("No target kubeconfig configured, using the source cluster")
        return source_client

    try:
        target_client = config.new_client_from_config(config_file=kubeconfig_path)
    except (config.ConfigException, OSError) as e:
        raise ConfigurationError(
            f"Failed to load target kubeconfig {kubeconfig_path}: {e}",
            user_action="Check the TARGET_KUBECONFIG path and the mounted kubeconfig",
        ) from e

    logger.info(f"Loaded target cluster configuration from {kubeconfig_path}")
    return target_client
