from typing import List

import yaml

from abassign.models.config_models import NamespaceConfig


def load_namespace_config(path) -> NamespaceConfig:
    with open(path) as f:
        data = yaml.safe_load(f)
    return NamespaceConfig(**data)


def load_namespace_configs(path) -> List[NamespaceConfig]:
    with open(path) as f:
        data = yaml.safe_load(f)
    return [NamespaceConfig(**ns) for ns in data["namespaces"]]
