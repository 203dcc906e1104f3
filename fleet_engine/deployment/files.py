# fleet_engine/deployment/files.py
"""Files to materialize on the host for one deployment."""

from typing import List

from fleet_engine.deployment.spec import DeploymentSpec
from fleet_engine.domain.models import EngineConfig
from fleet_engine.engines import get_strategy
from fleet_engine.engines.base import custom_config_file
from fleet_engine.pipeline.sequence import FileMaterialization


def plan_files(
    config: EngineConfig,
    spec: DeploymentSpec,
    summary: str,
) -> List[FileMaterialization]:
    """
    Collect every file the deployment needs, in write order.

    Order: bootstrap scripts, custom config, descriptor, summary.
    """
    strategy = get_strategy(config.engine)
    files: List[FileMaterialization] = []

    files.extend(strategy.bootstrap_files(config, spec.bootstrap_dir))

    conf = custom_config_file(config, strategy.config_mount, spec.configuration_dir)
    if conf is not None:
        files.append(conf)

    files.append(FileMaterialization(path=spec.descriptor_path, content=spec.to_yaml()))
    files.append(FileMaterialization(path=spec.readme_path, content=summary))

    return files
