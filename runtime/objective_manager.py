# runtime/objective_manager.py

import importlib
import logging
from collections import Counter

from core.exceptions import ProblemDefinitionError

logger = logging.getLogger("theseus")


class ObjectiveModuleManager:
    """Load ``modules.objectives.<type>`` on demand and build terms from configs."""

    def __init__(self, module_names=()):
        self.modules = {}
        counted = Counter(module_names)
        for name, count in counted.items():
            if count > 1:
                logger.debug(f"Objective type '{name}' used {count} times.")
            self.load(name)

    def load(self, name):
        if name in self.modules:
            return self.modules[name]
        try:
            module = importlib.import_module(f"modules.objectives.{name}")
        except ImportError as e:
            logger.error(f"Could not load objective module '{name}': {e}")
            raise ProblemDefinitionError(f"unknown objective type '{name}'") from e
        if not hasattr(module, "OBJECTIVE"):
            raise ProblemDefinitionError(
                f"objective module '{name}' does not define OBJECTIVE"
            )
        self.modules[name] = module
        logger.info(f"Loaded objective module: {name}")
        return module

    def build(self, config, topology, node_positions=None):
        """Instantiate one objective term from a ``{"type": ...}`` mapping."""
        if not isinstance(config, dict) or "type" not in config:
            raise ProblemDefinitionError(
                f"objective entries need a 'type' key; got {config!r}"
            )
        module = self.load(str(config["type"]))
        return module.OBJECTIVE.from_config(config, topology, node_positions)

    def build_all(self, configs, topology, node_positions=None):
        return [self.build(cfg, topology, node_positions) for cfg in configs or []]
