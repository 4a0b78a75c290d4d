from n3core.core.config.compiler_config import CompilerOptions
from n3core.core.config.loader import load_options

__all__ = ["CompilerOptions", "load_options"]
