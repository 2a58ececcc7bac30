"""
Prompt Composer - builds AI assistant prompts from YAML workflows and components.
"""
from .constants import APP_NAME, APP_VERSION, APP_DESCRIPTION
from .cache import ComponentCache
from .composer import CompositionError, PromptComposer
from .config import ComposerConfig, load_config
from .resolver import VariableResolver
from .workflows import WorkflowLoader

__version__ = APP_VERSION
__all__ = [
    'APP_NAME', 'APP_VERSION', 'APP_DESCRIPTION',
    'ComponentCache', 'ComposerConfig', 'CompositionError',
    'PromptComposer', 'VariableResolver', 'WorkflowLoader', 'load_config',
]
