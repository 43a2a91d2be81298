"""AWS backend: create and destroy a Windows worker instance.

Create sequence (fatal steps raise, degraded steps add a warning)::

    1. cluster context (infraID)                    fatal
   1a. existing ledger readable                     fatal
    2. VPC  <infraID>-vpc, exactly one              fatal
    3. worker SG <infraID>-worker-sg, exactly one   fatal
    4. IAM profile <infraID>-worker-profile         degraded
    5. public subnet <infraID>-public-*             fatal
    6. create-or-reuse <infraID>-winc-sg            fatal
    7. RunInstances                                 fatal
    8. ledger record                                catastrophic
    9. ingress: VPC CIDR all traffic, RDP from me   degraded
   10. Name tag <infraID>-winNode                   degraded
   11. Elastic IP allocate / wait / associate       degraded

The ledger is written as soon as the instance id is known so that an
interrupted run still leaves a record ``destroy`` can act on.

Destroy walks the ledger record by record; each record is released,
stripped of its owned security groups and terminated.  Failures are
collected, never raised, and the ledger is rewritten with exactly the
records that still need work.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

from botocore.exceptions import BotoCoreError, ClientError

from windows_node_installer.aws.context import AWSContext
from windows_node_installer.aws.ec2 import (
    STATUS_TIMEOUT,
    ResourceNames,
    _error_code,
    allocate_address,
    associate_address,
    authorize_cluster_ingress,
    authorize_rdp_ingress,
    delete_security_group,
    ensure_windows_security_group,
    find_cluster_vpc,
    find_public_subnet,
    find_worker_security_group,
    launch_instance,
    release_address,
    release_instance_addresses,
    tag_instance,
    terminate_instance,
    wait_for_instance_status_ok,
    wait_for_instance_terminated,
)
from windows_node_installer.aws.iam import get_instance_profile_arn
from windows_node_installer.cloudprovider.base import (
    CloudProvider,
    CreateResult,
    DestroyResult,
)
from windows_node_installer.cluster.kubeclient import ClusterContext
from windows_node_installer.config.models import InstallerSettings, InstanceSpec
from windows_node_installer.errors import (
    InstallerError,
    InstanceLaunchError,
    LedgerError,
    PublicIPLookupError,
    ResourceNotFoundError,
    UnrecordedInstanceError,
)
from windows_node_installer.publicip import HTTPPublicIPResolver, PublicIPResolver
from windows_node_installer.state.models import InstanceRecord, SecurityGroupRecord
from windows_node_installer.state.store import (
    ledger_path,
    load_ledger,
    record_instance,
    save_remaining,
)

logger = logging.getLogger(__name__)

PLATFORM_AWS = "AWS"

AWSError = (BotoCoreError, ClientError)


class AWSProvider(CloudProvider):
    """Windows node provisioning on EC2.

    Args:
        aws_ctx: Session/identity for the target account and region.
        ledger_file: Path of the ledger JSON file.
        cluster: Cluster identity; required by :meth:`create_instance`.
        ip_resolver: Source of the operator's public IP for the RDP rule.
        status_timeout: Upper bound on the instance status-check wait.
    """

    platform_type = PLATFORM_AWS

    def __init__(
        self,
        aws_ctx: AWSContext,
        ledger_file: Union[str, Path],
        *,
        cluster: Optional[ClusterContext] = None,
        ip_resolver: Optional[PublicIPResolver] = None,
        status_timeout: float = STATUS_TIMEOUT,
        _sleep_fn: Any = None,
        _clock: Any = None,
    ) -> None:
        self.aws_ctx = aws_ctx
        self.ledger_file = Path(ledger_file)
        self.cluster = cluster
        self.ip_resolver = ip_resolver or HTTPPublicIPResolver()
        self.status_timeout = status_timeout
        self._sleep_fn = _sleep_fn
        self._clock = _clock
        self._ec2: Any = None
        self._iam: Any = None

    # -- clients ----------------------------------------------------------

    @property
    def ec2(self) -> Any:
        if self._ec2 is None:
            self._ec2 = self.aws_ctx.client("ec2")
        return self._ec2

    @property
    def iam(self) -> Any:
        if self._iam is None:
            self._iam = self.aws_ctx.client("iam")
        return self._iam

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    def create_instance(self, spec: InstanceSpec) -> CreateResult:
        if self.cluster is None:
            raise InstallerError(
                "cluster context is required to create an instance; "
                "provide the cluster kubeconfig"
            )
        # The ledger must be readable before anything is created.
        load_ledger(self.ledger_file)

        names = ResourceNames(self.cluster.infrastructure_name)
        warnings: List[str] = []

        def warn(msg: str) -> None:
            logger.warning(msg)
            warnings.append(msg)

        # -- discovery -----------------------------------------------------
        vpc = find_cluster_vpc(self.ec2, names)
        logger.info("Cluster VPC: %s (%s)", vpc.vpc_id, vpc.cidr_block or "no CIDR")

        worker_sg = find_worker_security_group(self.ec2, names)
        logger.info("Cluster worker security group: %s", worker_sg)

        profile_arn: Optional[str] = None
        try:
            profile_arn = get_instance_profile_arn(self.iam, names.worker_profile_name)
        except ResourceNotFoundError as exc:
            warn(f"{exc}; launching without an IAM instance profile")

        subnet = find_public_subnet(self.ec2, vpc.vpc_id, names)
        logger.info("Public subnet: %s (%s)", subnet.subnet_id, subnet.name)

        sg = ensure_windows_security_group(self.ec2, vpc.vpc_id, names)
        owned_sg = (
            SecurityGroupRecord(group_id=sg.group_id, group_name=sg.group_name)
            if sg.created
            else None
        )

        # -- launch --------------------------------------------------------
        try:
            instance_id = launch_instance(
                self.ec2,
                image_id=spec.image_id,
                instance_type=spec.instance_type,
                key_name=spec.key_name,
                subnet_id=subnet.subnet_id,
                security_group_ids=[sg.group_id, worker_sg],
                iam_profile_arn=profile_arn,
            )
        except InstanceLaunchError as exc:
            if owned_sg is not None:
                raise InstanceLaunchError(
                    f"{exc}; security group {sg.group_name} ({sg.group_id}) was "
                    "created for this instance and must be deleted manually"
                ) from exc
            raise

        # -- ledger --------------------------------------------------------
        record = InstanceRecord(
            instance_id=instance_id,
            security_groups=[owned_sg] if owned_sg is not None else [],
        )
        try:
            record_instance(self.ledger_file, record)
        except LedgerError as exc:
            logger.critical(
                "Instance %s is running but NOT recorded in %s",
                instance_id, self.ledger_file,
            )
            raise UnrecordedInstanceError(
                instance_id,
                str(self.ledger_file),
                [s.group_id for s in record.owned_security_groups],
                cause=str(exc),
            ) from exc

        # -- wiring (degraded on failure) ----------------------------------
        self._authorize_ingress(sg.group_id, vpc.cidr_block, warn)

        try:
            tag_instance(self.ec2, instance_id, names.instance_name)
        except AWSError as exc:
            warn(f"could not create Name tag for instance {instance_id}: {exc}")

        public_ip = self._attach_public_ip(instance_id, warn)

        return CreateResult(
            instance_id=instance_id,
            ledger_path=str(self.ledger_file),
            public_ip=public_ip,
            security_group=owned_sg,
            warnings=warnings,
        )

    def _authorize_ingress(
        self,
        group_id: str,
        cidr_block: str,
        warn: Callable[[str], None],
    ) -> None:
        if cidr_block:
            try:
                authorize_cluster_ingress(self.ec2, group_id, cidr_block)
            except AWSError as exc:
                warn(f"unable to allow cluster traffic from {cidr_block} on {group_id}: {exc}")
        else:
            warn(f"cluster VPC has no CIDR block; add cluster ingress to {group_id} manually")

        try:
            source_ip = self.ip_resolver.resolve()
        except PublicIPLookupError as exc:
            warn(f"{exc}; RDP ingress not configured, instance unreachable over RDP")
            return
        try:
            authorize_rdp_ingress(self.ec2, group_id, source_ip)
        except AWSError as exc:
            warn(
                f"unable to allow RDP from {source_ip} on {group_id}: {exc}; "
                "instance unreachable over RDP"
            )

    def _attach_public_ip(
        self,
        instance_id: str,
        warn: Callable[[str], None],
    ) -> Optional[str]:
        try:
            allocation_id, public_ip = allocate_address(self.ec2)
        except AWSError as exc:
            warn(
                f"error allocating public ip to associate with instance, "
                f"please manually allocate public ip: {exc}"
            )
            return None

        logger.info("Waiting for instance %s to be ready for a public ip address ...", instance_id)
        wait = wait_for_instance_status_ok(
            self.ec2,
            instance_id,
            timeout=self.status_timeout,
            _sleep_fn=self._sleep_fn,
            _clock=self._clock,
        )
        if not wait.success:
            warn(f"instance {instance_id} did not pass status checks: {wait.error}")

        try:
            associate_address(self.ec2, allocation_id, instance_id)
        except AWSError as exc:
            warn(f"failed to associate public ip {public_ip} with {instance_id}: {exc}")
            try:
                release_address(self.ec2, allocation_id)
            except AWSError as rel_exc:
                warn(f"failed to release unused address {allocation_id}, release it manually: {rel_exc}")
            return None

        logger.info("Associated %s with %s", public_ip, instance_id)
        return public_ip

    # ------------------------------------------------------------------
    # destroy
    # ------------------------------------------------------------------

    def destroy_instances(self) -> DestroyResult:
        result = DestroyResult(ledger_path=str(self.ledger_file))
        records = load_ledger(self.ledger_file)
        if not records:
            logger.info("No instances recorded in %s, nothing to destroy", self.ledger_file)
            return result

        logger.info("Consuming ledger %s (%d instances)", self.ledger_file, len(records))
        for record in records:
            leftover = self._destroy_record(record, result)
            if leftover is None:
                result.destroyed.append(record.instance_id)
            else:
                result.remaining.append(leftover)

        try:
            save_remaining(self.ledger_file, result.remaining)
        except LedgerError as exc:
            logger.error("%s", exc)
            result.errors.append(str(exc))
        else:
            if result.remaining:
                logger.warning(
                    "Ledger %s kept with %d records due to deletion errors",
                    self.ledger_file, len(result.remaining),
                )
        return result

    def _destroy_record(
        self,
        record: InstanceRecord,
        result: DestroyResult,
    ) -> Optional[InstanceRecord]:
        """Tear down one record; return what is left of it, or ``None``."""
        instance_id = record.instance_id

        for msg in release_instance_addresses(self.ec2, instance_id):
            logger.warning(msg)
            result.warnings.append(msg)

        failed: List[SecurityGroupRecord] = []
        in_use: List[SecurityGroupRecord] = []
        for sg in record.owned_security_groups:
            try:
                delete_security_group(self.ec2, sg.group_id)
            except AWSError as exc:
                if _error_code(exc) == "DependencyViolation":
                    logger.info(
                        "Security group %s still in use, retrying after %s terminates",
                        sg.group_id, instance_id,
                    )
                    in_use.append(sg)
                else:
                    self._fail(result, f"failed to delete security group {sg.group_name} ({sg.group_id}): {exc}")
                    failed.append(sg)

        terminated = True
        try:
            terminate_instance(self.ec2, instance_id)
        except AWSError as exc:
            terminated = False
            self._fail(result, f"failed to delete instance '{instance_id}': {exc}")

        if in_use:
            failed.extend(self._delete_after_termination(instance_id, in_use, terminated, result))

        if terminated and not failed:
            return None
        return record.model_copy(update={"security_groups": failed})

    def _delete_after_termination(
        self,
        instance_id: str,
        groups: List[SecurityGroupRecord],
        terminated: bool,
        result: DestroyResult,
    ) -> List[SecurityGroupRecord]:
        """Retry deletion of groups that were attached to *instance_id*."""
        if not terminated:
            for sg in groups:
                self._fail(result, f"security group {sg.group_id} still attached to {instance_id}")
            return list(groups)

        wait = wait_for_instance_terminated(
            self.ec2, instance_id, _sleep_fn=self._sleep_fn, _clock=self._clock,
        )
        if not wait.success:
            for sg in groups:
                self._fail(
                    result,
                    f"security group {sg.group_id} not deleted, {instance_id} "
                    f"did not terminate: {wait.error}",
                )
            return list(groups)

        failed: List[SecurityGroupRecord] = []
        for sg in groups:
            try:
                delete_security_group(self.ec2, sg.group_id)
            except AWSError as exc:
                self._fail(result, f"failed to delete security group {sg.group_name} ({sg.group_id}): {exc}")
                failed.append(sg)
        return failed

    @staticmethod
    def _fail(result: DestroyResult, msg: str) -> None:
        logger.error(msg)
        result.errors.append(msg)


# ---------------------------------------------------------------------------
# Builder (registered with the provider factory)
# ---------------------------------------------------------------------------


def build_aws_provider(
    settings: InstallerSettings,
    cluster: Optional[ClusterContext] = None,
    *,
    ip_resolver: Optional[PublicIPResolver] = None,
) -> AWSProvider:
    """Build an :class:`AWSProvider` from CLI settings.

    The cluster's own region takes precedence over ``settings.region``.
    """
    region = settings.region
    if cluster is not None and cluster.region:
        if settings.region and settings.region != cluster.region:
            logger.warning(
                "Cluster runs in %s; ignoring requested region %s",
                cluster.region, settings.region,
            )
        region = cluster.region

    aws_ctx = AWSContext.build(settings.credentials_path, settings.profile, region)
    logger.info(
        "AWS context: account=%s profile=%s region=%s",
        aws_ctx.account_id, aws_ctx.profile, aws_ctx.region,
    )
    return AWSProvider(
        aws_ctx,
        ledger_path(settings.ledger_dir),
        cluster=cluster,
        ip_resolver=ip_resolver,
    )
