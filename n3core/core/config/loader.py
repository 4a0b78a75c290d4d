import json
import os
import re
from typing import Any

import yaml

from n3core.core.config.compiler_config import CompilerOptions
from n3core.utils.logger import get_logger


def load_options(path: str) -> CompilerOptions:
    """Load CompilerOptions from a YAML file.

    The file may hold the options at the top level or under a `compiler:` key.
    """
    logger = get_logger()
    with open(path, encoding="utf-8") as file:
        cfg_dict = yaml.safe_load(file) or {}

    if not isinstance(cfg_dict, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(cfg_dict).__name__}")
    if "compiler" in cfg_dict and isinstance(cfg_dict["compiler"], dict):
        cfg_dict = cfg_dict["compiler"]

    # Expand environment variables
    cfg_dict = _expand_env_vars(cfg_dict)
    options = CompilerOptions.from_dict(cfg_dict)

    cfg_to_log = {k: v for k, v in options.to_dict().items() if v is not None}
    logger.debug(f"config:\n{json.dumps(cfg_to_log, indent=2, default=str, sort_keys=True)}")

    return options


def _expand_env_vars(obj: Any) -> Any:
    """
    Recursively expand environment variables in config.
    Supports ${VAR_NAME} syntax.
    """
    if isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        pattern = r'\$\{([^}]+)\}'

        def replace_env_var(match):
            var_name = match.group(1)
            value = os.environ.get(var_name)
            if value is None:
                get_logger().warning(f"Environment variable not found: {var_name}")
                return match.group(0)  # Return original if not found
            return value

        return re.sub(pattern, replace_env_var, obj)
    else:
        return obj
