# fleet_engine/deployment/spec.py
"""Engine-agnostic deployment descriptor."""

import copy
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Tuple

import yaml


COMPOSE_VERSION = "3.8"
DESCRIPTOR_FILENAME = "docker-compose.yml"
README_FILENAME = "README.md"
BOOTSTRAP_DIRNAME = "docker-entrypoint-initdb.d"
BOOTSTRAP_TARGET = "/docker-entrypoint-initdb.d"


@dataclass(frozen=True)
class BindMount:
    """Host path mounted into the container."""
    source: str
    target: str
    read_only: bool = True

    def to_compose(self) -> Dict[str, Any]:
        return {
            "type": "bind",
            "source": self.source,
            "target": self.target,
            "read_only": self.read_only,
        }


@dataclass(frozen=True)
class DeploymentSpec:
    """
    Complete deployment of one instance.

    Built once per provisioning request and never mutated afterwards.
    ``service`` is a read-only view over a private copy of the mapping
    passed in; ``to_compose`` hands out copies.
    """
    instance_id: str
    name: str
    image: str
    configuration_dir: str
    network: str
    service: Mapping[str, Any] = field(repr=False)
    named_volumes: Tuple[str, ...] = ()
    bind_mounts: Tuple[BindMount, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "service", MappingProxyType(copy.deepcopy(dict(self.service))))

    # -------------------------
    # ON-HOST LAYOUT
    # -------------------------

    @property
    def descriptor_path(self) -> str:
        return f"{self.configuration_dir}/{DESCRIPTOR_FILENAME}"

    @property
    def readme_path(self) -> str:
        return f"{self.configuration_dir}/{README_FILENAME}"

    @property
    def bootstrap_dir(self) -> str:
        return f"{self.configuration_dir}/{BOOTSTRAP_DIRNAME}"

    @property
    def required_directories(self) -> Tuple[str, ...]:
        """Directories that must exist before the instance is converged."""
        return (self.configuration_dir, self.bootstrap_dir)

    # -------------------------
    # SERIALIZATION
    # -------------------------

    def to_compose(self) -> Dict[str, Any]:
        document: Dict[str, Any] = {
            "version": COMPOSE_VERSION,
            "services": {
                self.instance_id: copy.deepcopy(dict(self.service)),
            },
            "networks": {
                self.network: {
                    "external": True,
                    "name": self.network,
                    "attachable": True,
                }
            },
        }
        if self.named_volumes:
            document["volumes"] = {
                name: {"name": name, "external": False}
                for name in self.named_volumes
            }
        return document

    def to_yaml(self) -> str:
        return yaml.safe_dump(
            self.to_compose(),
            sort_keys=False,
            default_flow_style=False,
            width=4096,
        )
