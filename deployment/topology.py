"""
Replica topology for camera ingest deployments.

Turns a replica count, a release name and an optional alias into the
ordered list of worker instance names and the storage streams they write to.
Names must stay stable across redeploys, so the output depends on nothing
but the inputs.
"""
import re
from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field

DEFAULT_STREAM_BASE_NAME = "stream"

ALIAS_RE = re.compile(r"[A-Za-z0-9-]*")


class InvalidArgument(ValueError):
    pass


class ReplicaSpec(BaseModel):
    """One worker of a deployment: which instance writes which stream."""

    index: int = Field(..., ge=0)
    instance_name: str = Field(..., min_length=1)
    stream_name: str = Field(..., min_length=1)

    class Config:
        frozen = True


def allocate(
    replica_count: int,
    base_name: str,
    alias: Optional[str] = None,
    stream_base_name: str = DEFAULT_STREAM_BASE_NAME,
) -> List[ReplicaSpec]:
    """
    Derive the replica specs of one deployment, in index order.

    The alias only lands in instance names. Stream names get the index
    suffix and nothing else, and a single replica carries no suffix at all.
    """
    if isinstance(replica_count, bool) or not isinstance(replica_count, int):
        raise InvalidArgument(f"replica_count must be an integer, got {replica_count!r}")
    if replica_count < 1:
        raise InvalidArgument(f"replica_count must be >= 1, got {replica_count}")
    if not base_name:
        raise InvalidArgument("base_name must be non-empty")
    if not stream_base_name:
        raise InvalidArgument("stream_base_name must be non-empty")
    if alias and not ALIAS_RE.fullmatch(alias):
        raise InvalidArgument(
            f"alias {alias!r} may only contain letters, digits and hyphens"
        )

    alias_suffix = f"-{alias}" if alias else ""

    specs = []
    for i in range(replica_count):
        num_suffix = "" if replica_count == 1 else f"-{i}"
        specs.append(
            ReplicaSpec(
                index=i,
                instance_name=f"{base_name}{alias_suffix}{num_suffix}",
                stream_name=f"{stream_base_name}{num_suffix}",
            )
        )
    return specs


def find_conflicts(
    specs: Iterable[ReplicaSpec],
    check_streams: bool = False,
) -> List[Tuple[ReplicaSpec, ReplicaSpec]]:
    """
    Report specs whose instance name (and optionally stream name) is taken.

    Aliased releases share stream numbering on purpose, so stream names are
    only compared when asked. Earlier specs win; each conflict is returned
    as (kept, duplicate).
    """
    instances = {}
    streams = {}
    conflicts = []

    for spec in specs:
        kept = instances.get(spec.instance_name)
        if kept is None and check_streams:
            kept = streams.get(spec.stream_name)
        if kept is not None:
            conflicts.append((kept, spec))
            continue
        instances[spec.instance_name] = spec
        streams.setdefault(spec.stream_name, spec)

    return conflicts
