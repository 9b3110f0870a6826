# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
HTTP client for the local CNS service.

Implements the sink the controllers push desired state into. Every call is
idempotent on the CNS side: resending the same state leaves CNS unchanged.
"""

import logging
from typing import Dict, Optional

import requests

import constants
from models import (
    CreateNetworkContainerRequest,
    NodeNetworkConfigSpec,
    PodInfo,
    Scaler,
)

logger = logging.getLogger(__name__)


class CNSClientError(Exception):
    """CNS rejected a request or could not be reached"""

    def __init__(self, message: str, return_code: Optional[int] = None):
        super().__init__(message)
        self.return_code = return_code


class CNSClient:
    """Posts network container state to the local CNS REST API"""

    def __init__(self,
                 base_url: str = constants.CNS_URL,
                 timeout: float = constants.CNS_REQUEST_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, path: str, payload: Dict) -> Dict:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.post(url,
                                         json=payload,
                                         timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise CNSClientError(f"POST {url} failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        return_code = body.get('ReturnCode', 0) if isinstance(body,
                                                              dict) else 0
        if return_code:
            raise CNSClientError(
                f"POST {url} returned code {return_code}: "
                f"{body.get('Message', '')}",
                return_code=return_code)
        return body

    def reconcile_nc_state(self,
                           nc_request: Optional[CreateNetworkContainerRequest],
                           pod_info_by_ip: Optional[Dict[str, PodInfo]],
                           scaler: Scaler,
                           spec: NodeNetworkConfigSpec) -> None:
        """
        Apply the desired NC state to CNS.

        nc_request None means the node has no network container yet;
        pod_info_by_ip None means CNS keeps its current pod assignments.
        """
        payload = {
            'CreateNetworkContainerRequest':
            nc_request.to_dict() if nc_request is not None else None,
            'PodInfoByIP': {
                ip: info.to_dict()
                for ip, info in pod_info_by_ip.items()
            } if pod_info_by_ip is not None else None,
            'Scaler': scaler.to_dict(),
            'Spec': spec.to_dict(),
        }
        nc_id = nc_request.network_container_id if nc_request else None
        logger.debug(f"[CNS] Reconciling NC state (nc={nc_id}, "
                     f"pods={len(pod_info_by_ip) if pod_info_by_ip else 0})")
        self._post(constants.CNS_RECONCILE_NC_STATE_PATH, payload)

    def create_or_update_network_container(
            self, nc_request: CreateNetworkContainerRequest) -> None:
        self._post(constants.CNS_CREATE_OR_UPDATE_NC_PATH,
                   nc_request.to_dict())

    def delete_network_container(self, nc_id: str) -> None:
        self._post(constants.CNS_DELETE_NC_PATH,
                   {'NetworkContainerid': nc_id})
