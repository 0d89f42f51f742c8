import importlib
import importlib.util
import logging
import plistlib
import sys
from pathlib import Path
from types import ModuleType
from typing import Any, Dict, Mapping, Union
import yaml
logger = logging.getLogger(__name__)

PLIST_SUFFIXES = {'.plist'}
YAML_SUFFIXES = {'.yaml', '.yml'}


def import_by_path(path: str) -> Any:
    """Resolve ``'pkg.mod:attr'`` or ``'pkg.mod.attr'`` to the named attribute."""
    if not isinstance(path, str):
        raise TypeError(f'Import path must be a string, got {type(path)}')
    if ':' in path:
        module_name, attr_name = path.split(':', 1)
    elif '.' in path:
        module_name, attr_name = path.rsplit('.', 1)
    else:
        raise ValueError(f"Import path '{path}' is ambiguous. Use 'pkg.mod:attr' or 'pkg.mod.attr'.")

    if not module_name or not attr_name:
        raise ValueError(f'Invalid import path format: {path}. Could not determine module and attribute.')

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ImportError(f"Could not import module '{module_name}': {e}") from e
    try:
        return getattr(module, attr_name)
    except AttributeError as e:
        raise AttributeError(f"Attribute '{attr_name}' not found in module '{module_name}': {e}") from e


def load_manifest_file(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read one manifest file, choosing the codec by suffix.

    Raises OSError when the file cannot be read, and ValueError when its
    content is not a property list or YAML mapping.
    """
    actual_path = Path(path)
    suffix = actual_path.suffix.lower()
    raw = actual_path.read_bytes()

    if suffix in PLIST_SUFFIXES:
        try:
            data = plistlib.loads(raw)
        except (plistlib.InvalidFileException, ValueError) as exc:
            raise ValueError(f"'{actual_path}' is not a valid property list: {exc}") from exc
    elif suffix in YAML_SUFFIXES:
        try:
            data = yaml.safe_load(raw.decode('utf-8')) or {}
        except (yaml.YAMLError, UnicodeDecodeError) as exc:
            raise ValueError(f"'{actual_path}' is not valid YAML: {exc}") from exc
    else:
        raise ValueError(f"Unsupported manifest format '{suffix}' for {actual_path}")

    if not isinstance(data, Mapping):
        raise ValueError(f"Top-level object in '{actual_path}' must be a mapping, found {type(data).__name__}")
    return dict(data)


def write_manifest_file(path: Union[str, Path], data: Mapping[str, Any]) -> None:
    """Write *data* back in the format the file already uses."""
    actual_path = Path(path)
    suffix = actual_path.suffix.lower()
    if suffix in PLIST_SUFFIXES:
        actual_path.write_bytes(plistlib.dumps(dict(data), sort_keys=False))
    elif suffix in YAML_SUFFIXES:
        actual_path.write_text(yaml.safe_dump(dict(data), sort_keys=False), encoding='utf-8')
    else:
        raise ValueError(f"Unsupported manifest format '{suffix}' for {actual_path}")
    logger.debug(f"Wrote manifest {actual_path}")


def load_module_from_path(path: Union[str, Path], module_name: str) -> ModuleType:
    """
    Execute a Python source file as a fresh module named *module_name*.

    The module is placed in ``sys.modules`` before execution so relative
    lookups inside it resolve, and removed again if execution fails.
    """
    actual_path = Path(path)
    if not actual_path.is_file():
        raise FileNotFoundError(f"Entry file not found: {actual_path}")

    spec = importlib.util.spec_from_file_location(module_name, actual_path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot build an import spec for {actual_path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(module_name, None)
        raise
    logger.debug(f"Loaded module '{module_name}' from {actual_path}")
    return module


def normalize_path(path: Union[str, Path], base_path: Union[str, Path, None] = None) -> Path:
    path_obj = Path(path)
    if not path_obj.is_absolute() and base_path:
        path_obj = Path(base_path) / path_obj
    return path_obj.resolve()


def is_within(path: Union[str, Path], root: Union[str, Path]) -> bool:
    try:
        Path(path).resolve().relative_to(Path(root).resolve())
        return True
    except ValueError:
        return False


def safe_module_name(name: str) -> str:
    safe_chars = []
    for char in name:
        if char.isalnum() or char == '_':
            safe_chars.append(char)
        else:
            safe_chars.append('_')
    safe_name = ''.join(safe_chars)
    if not safe_name or safe_name[0].isdigit():
        safe_name = f'_{safe_name}'
    return safe_name
