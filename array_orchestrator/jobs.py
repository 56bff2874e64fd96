"""
Job runner.

Dispatches job dicts ({'id', 'job_type', 'details'}) to orchestrator
operations and reports results as plain dicts. Job details may use the
legacy protocol inputs (a protocol string and/or fc/iscsi switches); they
are collapsed into a single Protocol here, before anything reaches the core.
"""

import logging
from typing import Dict, Optional

from pydantic import ValidationError

from array_orchestrator.config import settings
from array_orchestrator.context import OperationContext
from array_orchestrator.correlator import ResourceCorrelator
from array_orchestrator.errors import ArrayOrchestratorError, ConfigurationError
from array_orchestrator.models import (
    ArrayCredentials,
    ComputeCredentials,
    Datastore,
    Protocol,
)
from array_orchestrator.provisioning import configure_iscsi_targets, create_storage_host
from array_orchestrator.registry import ConnectionRegistry
from array_orchestrator.workflow import WorkloadDomainWorkflow

logger = logging.getLogger(__name__)

LEGACY_PROTOCOL_NAMES = {
    "fc": Protocol.FIBRE_CHANNEL,
    "fibrechannel": Protocol.FIBRE_CHANNEL,
    "fibre_channel": Protocol.FIBRE_CHANNEL,
    "iscsi": Protocol.ISCSI,
}


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def protocol_from_legacy(protocol: Optional[str] = None, fc: bool = False, iscsi: bool = False) -> Protocol:
    """
    Collapse the legacy protocol string and boolean switches into one Protocol.

    Nothing selected means Fibre Channel.

    Raises:
        ConfigurationError: unknown protocol name, or contradictory selections
    """
    selected = set()
    if protocol:
        key = protocol.strip().lower().replace(" ", "").replace("-", "")
        if key not in LEGACY_PROTOCOL_NAMES:
            raise ConfigurationError(f"Unknown protocol {protocol!r}, use FC or iSCSI")
        selected.add(LEGACY_PROTOCOL_NAMES[key])
    if fc:
        selected.add(Protocol.FIBRE_CHANNEL)
    if iscsi:
        selected.add(Protocol.ISCSI)

    if len(selected) > 1:
        raise ConfigurationError("Select either Fibre Channel or iSCSI, not both")
    return selected.pop() if selected else Protocol.FIBRE_CHANNEL


def _require(details: Dict, key: str):
    value = details.get(key)
    if value is None or value == '':
        raise ConfigurationError(f"Job details are missing '{key}'")
    return value


class JobRunner:
    """Runs orchestrator jobs against a registry and a compute collaborator."""

    def __init__(self, compute, registry: Optional[ConnectionRegistry] = None, connector=None):
        self.compute = compute
        self.registry = registry if registry is not None else ConnectionRegistry()
        self.connector = connector
        self.correlator = ResourceCorrelator(self.registry, compute)
        self.workflow = WorkloadDomainWorkflow(self.registry, compute, self.correlator)

    def execute_job(self, job: Dict) -> Dict:
        job_type = job.get('job_type')
        handler_map = {
            'connect_array': self.execute_connect_array,
            'datastore_array': self.execute_datastore_array,
            'create_storage_host': self.execute_create_storage_host,
            'configure_iscsi': self.execute_configure_iscsi,
            'initialize_workload_domain': self.execute_initialize_workload_domain,
        }

        handler = handler_map.get(job_type)
        if not handler:
            logger.error(f"Unknown job type: {job_type}")
            return {'job_id': job.get('id'), 'success': False, 'error': f"Unsupported job type: {job_type}"}

        details = job.get('details', {}) or {}
        context = OperationContext()
        logger.info(f"Starting {job_type} job: {job.get('id')}")
        try:
            result = handler(details, context)
        except ArrayOrchestratorError as e:
            logger.error(f"{job_type} job {job.get('id')} failed: {e.message}")
            return {
                'job_id': job.get('id'),
                'success': False,
                'error': e.message,
                'error_type': type(e).__name__,
                'error_code': e.error_code,
                'warnings': context.warnings,
            }

        return {'job_id': job.get('id'), 'success': True, 'result': result, 'warnings': context.warnings}

    def _connection_for(self, details: Dict):
        endpoint = details.get('array_endpoint')
        if endpoint:
            return self.registry.resolve_by_endpoint(endpoint)
        return self.registry.default()

    def _open_host(self, details: Dict):
        credentials = ComputeCredentials(
            username=details.get('username', 'root'),
            password=details.get('password', ''),
        )
        si = self.compute.open_session(_require(details, 'host_address'), credentials)
        try:
            return si, self.compute.get_host(si)
        except Exception:
            self.compute.close_session(si)
            raise

    # =========================================================================
    # Handlers
    # =========================================================================

    def execute_connect_array(self, details: Dict, context: OperationContext) -> Dict:
        credentials = ArrayCredentials(
            api_token=details.get('api_token'),
            username=details.get('username'),
            password=details.get('password'),
        )
        kwargs = {'connector': self.connector} if self.connector else {}
        connection = self.registry.connect(
            _require(details, 'endpoint'),
            credentials,
            default=bool(details.get('default')),
            non_default=bool(details.get('non_default')),
            **kwargs,
        )
        return {'endpoint': connection.endpoint, 'serial': connection.serial}

    def execute_datastore_array(self, details: Dict, context: OperationContext) -> Dict:
        try:
            datastore = Datastore(**_require(details, 'datastore'))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid datastore details: {e}") from e
        connection = self.correlator.datastore_to_array(datastore, context=context)
        return {'datastore': datastore.name, 'endpoint': connection.endpoint, 'serial': connection.serial}

    def execute_create_storage_host(self, details: Dict, context: OperationContext) -> Dict:
        protocol = protocol_from_legacy(details.get('protocol'), details.get('fc', False), details.get('iscsi', False))
        connection = self._connection_for(details)
        si, compute_host = self._open_host(details)
        try:
            storage_host = create_storage_host(self.correlator, compute_host, connection, protocol)
        finally:
            self.compute.close_session(si)
        return storage_host.model_dump()

    def execute_configure_iscsi(self, details: Dict, context: OperationContext) -> Dict:
        connection = self._connection_for(details)
        si, compute_host = self._open_host(details)
        try:
            portals = configure_iscsi_targets(self.compute, compute_host, connection)
        finally:
            self.compute.close_session(si)
        return {'host': compute_host.name, 'targets': portals}

    def execute_initialize_workload_domain(self, details: Dict, context: OperationContext) -> Dict:
        protocol = protocol_from_legacy(details.get('protocol'), details.get('fc', False), details.get('iscsi', False))
        host_addresses = details.get('host_addresses') or []
        self.workflow.validate(
            host_addresses,
            details.get('datastore_name'),
            details.get('size_gb'),
            details.get('size_tb'),
            protocol,
        )
        connection = self._connection_for(details)
        group = self.workflow.run(
            host_addresses=host_addresses,
            credentials=ComputeCredentials(
                username=details.get('username', 'root'),
                password=details.get('password', ''),
            ),
            datastore_name=details.get('datastore_name'),
            size_gb=details.get('size_gb'),
            size_tb=details.get('size_tb'),
            protocol=protocol,
            connection=connection,
            context=context,
        )
        session = self.workflow.last_session
        return {
            'host_group': group.model_dump(),
            'volume': session.volume.model_dump() if session.volume else None,
            'datastore': session.datastore.name if session.datastore else None,
        }
