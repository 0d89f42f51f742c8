import copy
import logging
from typing import Any, Dict, Mapping

logger = logging.getLogger(__name__)


class ConfigMerger:
    @staticmethod
    def merge(
        base: Dict[str, Any],
        override: Dict[str, Any],
        context_description: str = "ConfigMerge",
        strict_keys: bool = False,
    ) -> Dict[str, Any]:
        """
        Merges an 'override' dictionary into a 'base' dictionary.
        - Dictionaries are merged recursively.
        - Lists and scalars in override replace values in base.
        - If strict_keys is True, override keys not in base raise ValueError.
        """
        if not isinstance(base, dict):
            logger.error(f"[{context_description}] Base for merge is not a dictionary (type: {type(base)}).")
            return copy.deepcopy(override) if isinstance(override, dict) else {}

        if not isinstance(override, dict):
            logger.warning(f"[{context_description}] Override for merge is not a dictionary (type: {type(override)}). "
                           f"Returning base.")
            return copy.deepcopy(base)

        merged = copy.deepcopy(base)
        for key, override_value in override.items():
            if key not in merged:
                if strict_keys:
                    raise ValueError(f"[{context_description}] Strict mode: Key '{key}' in override not found in base.")
                merged[key] = copy.deepcopy(override_value)
                logger.debug(f"[{context_description}] Added new key '{key}'")
            elif isinstance(merged[key], dict) and isinstance(override_value, dict):
                merged[key] = ConfigMerger.merge(
                    merged[key],
                    override_value,
                    context_description=f"{context_description} -> {key}",
                    strict_keys=strict_keys,
                )
            elif merged[key] != override_value:
                logger.debug(f"[{context_description}] Overridden key '{key}'")
                merged[key] = copy.deepcopy(override_value)

        return merged


def merge_configs(base: Dict[str, Any], *overrides: Dict[str, Any], context: str = "ConfigChain") -> Dict[str, Any]:
    """Merge each override into *base* in order; later layers win."""
    result = base
    for i, override_config in enumerate(overrides):
        result = ConfigMerger.merge(result, override_config, context_description=f"{context}_Step{i + 1}")
    return result


def dotted_get(config: Mapping[str, Any], dotted_key: str, default: Any = None) -> Any:
    """``dotted_get(cfg, 'persistence.db_path')``"""
    node: Any = config
    for part in dotted_key.split('.'):
        if not isinstance(node, Mapping) or part not in node:
            return default
        node = node[part]
    return node
