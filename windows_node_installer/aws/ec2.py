"""EC2 discovery and mutation helpers for the Windows node workflow.

Cluster resources are located by the naming conventions the OpenShift
installer applies on AWS (``<infraID>`` is the cluster's infrastructure name):

=====================  ===============================================
VPC                    ``Name=<infraID>-vpc``, state ``available``
Worker security group  ``Name=<infraID>-worker-sg`` +
                       ``kubernetes.io/cluster/<infraID>=owned``
Public subnet          ``Name`` contains ``<infraID>-public-``
=====================  ===============================================

Resources created by the installer:

* Security group ``<infraID>-winc-sg`` (reused if it already exists)
* Instance tagged ``Name=<infraID>-winNode``

Every helper takes the boto3 EC2 client as its first argument so tests can
pass a :class:`unittest.mock.MagicMock`.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from windows_node_installer.errors import (
    AmbiguousResourceError,
    CloudOperationError,
    InstanceLaunchError,
    ResourceNotFoundError,
    SecurityGroupError,
)

logger = logging.getLogger(__name__)

AWSError = (BotoCoreError, ClientError)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

WINDOWS_SG_DESCRIPTION = "security group for rdp and all traffic"
RDP_PORT = 3389

#: Instance status wait: first delay, backoff factor, delay cap, overall budget.
STATUS_INITIAL_DELAY: float = 15.0
STATUS_BACKOFF: float = 1.5
STATUS_MAX_DELAY: float = 60.0
STATUS_TIMEOUT: float = 900.0

TERMINATE_TIMEOUT: float = 300.0

_NOT_FOUND_CODES = frozenset({
    "InvalidGroup.NotFound",
    "InvalidGroupId.NotFound",
    "InvalidInstanceID.NotFound",
    "InvalidAllocationID.NotFound",
    "InvalidAssociationID.NotFound",
})


# ---------------------------------------------------------------------------
# Resource naming
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResourceNames:
    """Derive resource names and tags from the cluster infrastructure name."""

    infra_id: str

    @property
    def vpc_name(self) -> str:
        return f"{self.infra_id}-vpc"

    @property
    def worker_sg_name(self) -> str:
        return f"{self.infra_id}-worker-sg"

    @property
    def cluster_owner_tag(self) -> str:
        return f"kubernetes.io/cluster/{self.infra_id}"

    @property
    def public_subnet_marker(self) -> str:
        return f"{self.infra_id}-public-"

    @property
    def windows_sg_name(self) -> str:
        return f"{self.infra_id}-winc-sg"

    @property
    def instance_name(self) -> str:
        return f"{self.infra_id}-winNode"

    @property
    def worker_profile_name(self) -> str:
        return f"{self.infra_id}-worker-profile"


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------


@dataclass
class VpcInfo:
    """The cluster VPC."""

    vpc_id: str
    cidr_block: str = ""


@dataclass
class SubnetInfo:
    """A discovered subnet."""

    subnet_id: str = ""
    name: str = ""
    availability_zone: str = ""
    vpc_id: str = ""


@dataclass
class SecurityGroupInfo:
    """Outcome of :func:`ensure_windows_security_group`.

    ``created`` is *True* only when this call created the group; only such
    groups are owned by the installer and deleted on teardown.
    """

    group_id: str
    group_name: str
    created: bool


@dataclass
class WaitResult:
    """Outcome of a bounded poll (:func:`wait_for_instance_status_ok` etc.)."""

    success: bool
    final_status: Optional[str]
    elapsed_seconds: float
    attempts: int = 0
    error: str = ""


# ---------------------------------------------------------------------------
# Cluster resource discovery
# ---------------------------------------------------------------------------


def find_cluster_vpc(ec2_client: Any, names: ResourceNames) -> VpcInfo:
    """Return the single available VPC tagged ``<infraID>-vpc``.

    Raises:
        ResourceNotFoundError: no matching VPC.
        AmbiguousResourceError: more than one matching VPC.
        CloudOperationError: the describe call failed.
    """
    filters = {"tag:Name": names.vpc_name, "state": "available"}
    try:
        resp = ec2_client.describe_vpcs(Filters=_filters(filters))
    except AWSError as exc:
        raise CloudOperationError(f"unable to describe VPCs, {exc}") from exc

    vpcs = resp.get("Vpcs", [])
    if not vpcs:
        raise ResourceNotFoundError("VPC", filters)
    if len(vpcs) > 1:
        raise AmbiguousResourceError("VPC", [v["VpcId"] for v in vpcs], filters)
    vpc = vpcs[0]
    return VpcInfo(vpc_id=vpc["VpcId"], cidr_block=vpc.get("CidrBlock", ""))


def find_worker_security_group(ec2_client: Any, names: ResourceNames) -> str:
    """Return the id of the cluster's worker security group."""
    filters = {
        "tag:Name": names.worker_sg_name,
        f"tag:{names.cluster_owner_tag}": "owned",
    }
    try:
        resp = ec2_client.describe_security_groups(Filters=_filters(filters))
    except AWSError as exc:
        raise CloudOperationError(
            f"failed to look up security group of cluster worker, {exc}"
        ) from exc

    groups = resp.get("SecurityGroups", [])
    if not groups:
        raise ResourceNotFoundError(
            "worker security group",
            filters,
            hint="please add cluster worker security group manually",
        )
    if len(groups) > 1:
        raise AmbiguousResourceError(
            "worker security group", [g["GroupId"] for g in groups], filters,
        )
    return groups[0]["GroupId"]


def list_public_subnets(
    ec2_client: Any,
    vpc_id: str,
    names: ResourceNames,
) -> List[SubnetInfo]:
    """List subnets in *vpc_id* whose Name tag contains ``<infraID>-public-``.

    Sorted by name so that repeated runs pick the same subnet.
    """
    try:
        paginator = ec2_client.get_paginator("describe_subnets")
        results: List[SubnetInfo] = []
        for page in paginator.paginate(Filters=_filters({"vpc-id": vpc_id})):
            for s in page.get("Subnets", []):
                name = _tag_value(s.get("Tags", []), "Name")
                if names.public_subnet_marker in name:
                    results.append(
                        SubnetInfo(
                            subnet_id=s["SubnetId"],
                            name=name,
                            availability_zone=s.get("AvailabilityZone", ""),
                            vpc_id=s.get("VpcId", vpc_id),
                        )
                    )
    except AWSError as exc:
        raise CloudOperationError(
            f"failed to list subnets of VPC {vpc_id}, {exc}"
        ) from exc
    return sorted(results, key=lambda s: (s.name, s.subnet_id))


def find_public_subnet(
    ec2_client: Any,
    vpc_id: str,
    names: ResourceNames,
) -> SubnetInfo:
    """Return the public subnet the instance is placed in.

    The cluster has one public subnet per availability zone, so several
    matches are expected; the first by name is used.
    """
    subnets = list_public_subnets(ec2_client, vpc_id, names)
    if not subnets:
        raise ResourceNotFoundError(
            "public subnet",
            {"vpc-id": vpc_id, "tag:Name": f"*{names.public_subnet_marker}*"},
        )
    if len(subnets) > 1:
        logger.debug(
            "%d public subnets in %s, using %s",
            len(subnets), vpc_id, subnets[0].name,
        )
    return subnets[0]


# ---------------------------------------------------------------------------
# Windows security group
# ---------------------------------------------------------------------------


def ensure_windows_security_group(
    ec2_client: Any,
    vpc_id: str,
    names: ResourceNames,
) -> SecurityGroupInfo:
    """Create ``<infraID>-winc-sg`` in *vpc_id*, or reuse it if it exists.

    The create is attempted first; on any failure the group is looked up by
    name and VPC.  A reused group is reported with ``created=False``.
    """
    group_name = names.windows_sg_name
    try:
        resp = ec2_client.create_security_group(
            GroupName=group_name,
            Description=WINDOWS_SG_DESCRIPTION,
            VpcId=vpc_id,
        )
        logger.info("Created security group %s (%s)", group_name, resp["GroupId"])
        return SecurityGroupInfo(
            group_id=resp["GroupId"], group_name=group_name, created=True,
        )
    except AWSError as exc:
        logger.info(
            "Could not create security group %s, attaching existing instead: %s",
            group_name, exc,
        )
        create_error = exc

    filters = {"vpc-id": vpc_id, "group-name": group_name}
    try:
        found = ec2_client.describe_security_groups(Filters=_filters(filters))
    except AWSError as exc:
        raise SecurityGroupError(
            f"failed to create or find security group {group_name}, {exc}"
        ) from exc

    groups = found.get("SecurityGroups", [])
    if not groups:
        raise SecurityGroupError(
            f"failed to create or find security group {group_name} in "
            f"{vpc_id}, {create_error}"
        ) from create_error
    return SecurityGroupInfo(
        group_id=groups[0]["GroupId"], group_name=group_name, created=False,
    )


def authorize_cluster_ingress(ec2_client: Any, group_id: str, cidr_block: str) -> bool:
    """Allow all traffic from the cluster network *cidr_block*.

    Returns *False* if the rule already existed.
    """
    return _authorize_ingress(
        ec2_client,
        group_id,
        {"IpProtocol": "-1", "IpRanges": [{"CidrIp": cidr_block}]},
    )


def authorize_rdp_ingress(ec2_client: Any, group_id: str, source_ip: str) -> bool:
    """Allow RDP (TCP/3389) from *source_ip* only."""
    return _authorize_ingress(
        ec2_client,
        group_id,
        {
            "IpProtocol": "tcp",
            "FromPort": RDP_PORT,
            "ToPort": RDP_PORT,
            "IpRanges": [{"CidrIp": f"{source_ip}/32"}],
        },
    )


def _authorize_ingress(ec2_client: Any, group_id: str, permission: Dict[str, Any]) -> bool:
    try:
        ec2_client.authorize_security_group_ingress(
            GroupId=group_id, IpPermissions=[permission],
        )
    except ClientError as exc:
        if _error_code(exc) == "InvalidPermission.Duplicate":
            logger.debug("Ingress rule already present on %s: %s", group_id, permission)
            return False
        raise
    return True


def delete_security_group(ec2_client: Any, group_id: str) -> bool:
    """Delete *group_id*.  Returns *False* if it was already gone."""
    try:
        ec2_client.delete_security_group(GroupId=group_id)
    except ClientError as exc:
        if _error_code(exc) in _NOT_FOUND_CODES:
            logger.info("Security group %s already deleted", group_id)
            return False
        raise
    logger.info("Deleted security group %s", group_id)
    return True


# ---------------------------------------------------------------------------
# Instances
# ---------------------------------------------------------------------------


def launch_instance(
    ec2_client: Any,
    *,
    image_id: str,
    instance_type: str,
    key_name: str,
    subnet_id: str,
    security_group_ids: List[str],
    iam_profile_arn: Optional[str] = None,
) -> str:
    """Run exactly one instance and return its id."""
    kwargs: Dict[str, Any] = dict(
        ImageId=image_id,
        InstanceType=instance_type,
        KeyName=key_name,
        SubnetId=subnet_id,
        MinCount=1,
        MaxCount=1,
        SecurityGroupIds=security_group_ids,
    )
    if iam_profile_arn:
        kwargs["IamInstanceProfile"] = {"Arn": iam_profile_arn}
    try:
        resp = ec2_client.run_instances(**kwargs)
    except AWSError as exc:
        raise InstanceLaunchError(
            f"could not create instance from {image_id} ({instance_type}) "
            f"in {subnet_id}, {exc}"
        ) from exc
    instances = resp.get("Instances", [])
    if not instances:
        raise InstanceLaunchError("RunInstances returned no instance")
    instance_id = instances[0]["InstanceId"]
    logger.info("Created instance %s", instance_id)
    return instance_id


def tag_instance(ec2_client: Any, instance_id: str, name: str) -> None:
    """Set the ``Name`` tag on *instance_id*."""
    ec2_client.create_tags(
        Resources=[instance_id], Tags=[{"Key": "Name", "Value": name}],
    )


def terminate_instance(ec2_client: Any, instance_id: str) -> bool:
    """Terminate *instance_id*.  Returns *False* if it no longer exists."""
    try:
        ec2_client.terminate_instances(InstanceIds=[instance_id])
    except ClientError as exc:
        if _error_code(exc) in _NOT_FOUND_CODES:
            logger.info("Instance %s already gone", instance_id)
            return False
        raise
    logger.info("Terminating instance %s", instance_id)
    return True


# ---------------------------------------------------------------------------
# Elastic IPs
# ---------------------------------------------------------------------------


def allocate_address(ec2_client: Any) -> Tuple[str, str]:
    """Allocate a VPC Elastic IP.  Returns ``(allocation_id, public_ip)``."""
    resp = ec2_client.allocate_address(Domain="vpc")
    return resp["AllocationId"], resp["PublicIp"]


def associate_address(ec2_client: Any, allocation_id: str, instance_id: str) -> str:
    """Associate *allocation_id* with *instance_id*; returns the association id."""
    resp = ec2_client.associate_address(
        AllocationId=allocation_id, InstanceId=instance_id,
    )
    return resp.get("AssociationId", "")


def release_address(ec2_client: Any, allocation_id: str) -> None:
    try:
        ec2_client.release_address(AllocationId=allocation_id)
    except ClientError as exc:
        if _error_code(exc) not in _NOT_FOUND_CODES:
            raise


def release_instance_addresses(ec2_client: Any, instance_id: str) -> List[str]:
    """Disassociate and release every Elastic IP attached to *instance_id*.

    Best-effort: returns one message per address that could not be released.
    """
    try:
        resp = ec2_client.describe_addresses(
            Filters=_filters({"instance-id": instance_id}),
        )
    except AWSError as exc:
        return [f"failed to list addresses of {instance_id}: {exc}"]

    failures: List[str] = []
    for addr in resp.get("Addresses", []):
        allocation_id = addr.get("AllocationId", "")
        public_ip = addr.get("PublicIp", "")
        try:
            association_id = addr.get("AssociationId")
            if association_id:
                ec2_client.disassociate_address(AssociationId=association_id)
            if allocation_id:
                release_address(ec2_client, allocation_id)
            logger.info("Released address %s (%s)", public_ip, allocation_id)
        except AWSError as exc:
            failures.append(
                f"failed to release address {public_ip} ({allocation_id}): {exc}"
            )
    return failures


# ---------------------------------------------------------------------------
# Bounded waits
# ---------------------------------------------------------------------------


def get_instance_status(ec2_client: Any, instance_id: str) -> Optional[str]:
    """Return ``"ok"`` once both status checks pass, else the worst status seen.

    Returns ``None`` when the instance has no status yet.
    """
    resp = ec2_client.describe_instance_status(
        InstanceIds=[instance_id], IncludeAllInstances=True,
    )
    statuses = resp.get("InstanceStatuses", [])
    if not statuses:
        return None
    entry = statuses[0]
    instance_check = entry.get("InstanceStatus", {}).get("Status", "")
    system_check = entry.get("SystemStatus", {}).get("Status", "")
    if instance_check == "ok" and system_check == "ok":
        return "ok"
    return instance_check if instance_check != "ok" else system_check


def get_instance_state(ec2_client: Any, instance_id: str) -> Optional[str]:
    """Return the instance lifecycle state (``running``, ``terminated``, ...)."""
    try:
        resp = ec2_client.describe_instances(InstanceIds=[instance_id])
    except ClientError as exc:
        if _error_code(exc) in _NOT_FOUND_CODES:
            return "terminated"
        raise
    for reservation in resp.get("Reservations", []):
        for inst in reservation.get("Instances", []):
            return inst.get("State", {}).get("Name")
    return None


def wait_for_instance_status_ok(
    ec2_client: Any,
    instance_id: str,
    *,
    timeout: float = STATUS_TIMEOUT,
    initial_delay: float = STATUS_INITIAL_DELAY,
    max_delay: float = STATUS_MAX_DELAY,
    _sleep_fn: Any = None,
    _clock: Any = None,
) -> WaitResult:
    """Poll until the instance passes its status checks or *timeout* elapses.

    Never raises for a slow instance: a timeout is reported through
    :attr:`WaitResult.success` so the caller can downgrade it to a warning.
    """
    return _poll(
        lambda: get_instance_status(ec2_client, instance_id),
        lambda status: status == "ok",
        what=f"instance {instance_id} status checks",
        timeout=timeout,
        initial_delay=initial_delay,
        max_delay=max_delay,
        sleep=_sleep_fn or time.sleep,
        clock=_clock or time.monotonic,
    )


def wait_for_instance_terminated(
    ec2_client: Any,
    instance_id: str,
    *,
    timeout: float = TERMINATE_TIMEOUT,
    initial_delay: float = 5.0,
    max_delay: float = 30.0,
    _sleep_fn: Any = None,
    _clock: Any = None,
) -> WaitResult:
    """Poll until *instance_id* reaches ``terminated``."""
    return _poll(
        lambda: get_instance_state(ec2_client, instance_id),
        lambda state: state == "terminated",
        what=f"instance {instance_id} termination",
        timeout=timeout,
        initial_delay=initial_delay,
        max_delay=max_delay,
        sleep=_sleep_fn or time.sleep,
        clock=_clock or time.monotonic,
    )


def _poll(
    probe: Callable[[], Optional[str]],
    done: Callable[[Optional[str]], bool],
    *,
    what: str,
    timeout: float,
    initial_delay: float,
    max_delay: float,
    sleep: Callable[[float], None],
    clock: Callable[[], float],
) -> WaitResult:
    """Call *probe* with exponential backoff until *done* or the deadline."""
    start = clock()
    delay = initial_delay
    attempts = 0
    status: Optional[str] = None
    last_error = ""

    while True:
        attempts += 1
        try:
            status = probe()
            last_error = ""
        except AWSError as exc:
            last_error = str(exc)
            logger.warning("Polling %s failed (attempt %d): %s", what, attempts, exc)

        elapsed = clock() - start
        if done(status):
            return WaitResult(
                success=True,
                final_status=status,
                elapsed_seconds=elapsed,
                attempts=attempts,
            )

        remaining = timeout - elapsed
        if remaining <= 0:
            return WaitResult(
                success=False,
                final_status=status,
                elapsed_seconds=elapsed,
                attempts=attempts,
                error=last_error or f"timed out after {elapsed:.0f}s waiting for {what}",
            )

        logger.info(
            "Waiting for %s (status=%s, %.0fs elapsed)", what, status or "pending", elapsed,
        )
        sleep(min(delay, remaining))
        delay = min(delay * STATUS_BACKOFF, max_delay)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _filters(values: Dict[str, str]) -> List[Dict[str, Any]]:
    """``{"vpc-id": "vpc-1"}`` → ``[{"Name": "vpc-id", "Values": ["vpc-1"]}]``."""
    return [{"Name": k, "Values": [v]} for k, v in values.items()]


def _tag_value(tags: List[Dict[str, str]], key: str) -> str:
    for tag in tags or []:
        if tag.get("Key") == key:
            return tag.get("Value", "")
    return ""


def _error_code(exc: BaseException) -> str:
    """Extract AWS error code from a botocore ClientError (or return '')."""
    resp = getattr(exc, "response", None)
    if resp and isinstance(resp, dict):
        return resp.get("Error", {}).get("Code", "")
    return ""
