"""
Action code loader.

Actions are Python source files exporting `main(params)`. Each load
compiles the file's current source into a new module object, so an edit
shows up on the very next request and two requests for the same action
never share (or race on) a module object.

While an action loads, its directory is on `sys.path` so it can import
helper modules sitting next to it. Helpers imported from that directory
earlier are dropped first, which makes helper edits visible as well. The
newest module of each action stays registered in `sys.modules` under a
unique `owdev_action_<stem>_<n>` name.
"""

import importlib
import importlib.machinery
import importlib.util
import logging
import sys
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

MAIN_FUNCTION = "main"
MODULE_PREFIX = "owdev_action_"

# sys.path and sys.modules are process wide
_import_lock = threading.RLock()


class ActionLoadError(ImportError):
    """Raised when an action file cannot be loaded or has no main."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"{path}: {message}", path=path)


class _FreshSourceLoader(importlib.machinery.SourceFileLoader):
    # never read __pycache__: an edit within the same second as the
    # cached bytecode would otherwise be missed
    def get_code(self, fullname):
        source = self.get_data(self.path)
        return self.source_to_code(source, self.path)


_INSTALLED_DIRS = {"site-packages", "dist-packages"}


def _module_dir(module: Any) -> Optional[Path]:
    mod_file = getattr(module, "__file__", None)
    if not mod_file:
        return None
    return Path(mod_file).resolve().parent


def _is_helper(name: str, mod_dir: Path, directory: Path) -> bool:
    if name.startswith(MODULE_PREFIX) or name == "__main__":
        return False
    if name == "owdev" or name.startswith("owdev."):
        return False
    if mod_dir != directory and directory not in mod_dir.parents:
        return False
    # a virtualenv inside the action directory
    return not _INSTALLED_DIRS.intersection(mod_dir.relative_to(directory).parts)


def drop_modules_from(directory: Union[str, Path]) -> List[str]:
    """
    Remove from `sys.modules` every module whose file lives in `directory`
    or below it. Action modules registered by a `CodeLoader`, owdev itself
    and installed packages are left alone.

    Returns:
        Names of the dropped modules
    """
    directory = Path(directory).resolve()
    dropped = []
    with _import_lock:
        for name, module in list(sys.modules.items()):
            mod_dir = _module_dir(module)
            if mod_dir is not None and _is_helper(name, mod_dir, directory):
                sys.modules.pop(name, None)
                dropped.append(name)
    return dropped


class CodeLoader:
    """
    Loads action entry points, always from current source.

    Remembers the registered module name per path so `invalidate` can
    unregister it together with the helpers loaded from its directory.
    """

    def __init__(self, main_name: str = MAIN_FUNCTION):
        self._main_name = main_name
        self._loaded: Dict[str, str] = {}
        self._counter = 0
        self._lock = threading.Lock()

    @staticmethod
    def _key(path: Union[str, Path]) -> str:
        return str(Path(path).resolve())

    def _module_name(self, path: str) -> str:
        with self._lock:
            self._counter += 1
            n = self._counter
        return f"{MODULE_PREFIX}{Path(path).stem}_{n}"

    def registered_name(self, path: Union[str, Path]) -> Optional[str]:
        """`sys.modules` name of the newest module loaded from `path`."""
        with self._lock:
            return self._loaded.get(self._key(path))

    def load_module(self, path: Union[str, Path]):
        """
        Compile and execute `path` into a fresh module object.

        Raises:
            ActionLoadError: If the file is missing or fails to import
        """
        key = self._key(path)
        if not Path(key).is_file():
            raise ActionLoadError(key, "file not found")

        name = self._module_name(key)
        spec = importlib.util.spec_from_file_location(
            name, key, loader=_FreshSourceLoader(name, key)
        )
        if spec is None or spec.loader is None:
            raise ActionLoadError(key, "could not create module spec")
        module = importlib.util.module_from_spec(spec)
        directory = str(Path(key).parent)

        with _import_lock:
            drop_modules_from(directory)
            importlib.invalidate_caches()
            added = directory not in sys.path
            if added:
                sys.path.insert(0, directory)
            # helpers are recompiled on every load, so no pyc is written for them
            write_bytecode = sys.dont_write_bytecode
            sys.dont_write_bytecode = True
            sys.modules[name] = module
            try:
                spec.loader.exec_module(module)
            except Exception as e:
                sys.modules.pop(name, None)
                raise ActionLoadError(key, f"import failed: {e!r}") from e
            finally:
                sys.dont_write_bytecode = write_bytecode
                if added:
                    sys.path.remove(directory)

            with self._lock:
                previous = self._loaded.get(key)
                self._loaded[key] = name
            if previous is not None:
                sys.modules.pop(previous, None)
        return module

    def load_main(self, path: Union[str, Path]) -> Callable[..., Any]:
        """
        Load the action at `path` and return its main function.

        Raises:
            ActionLoadError: If the file cannot be loaded or has no callable main
        """
        module = self.load_module(path)
        main = getattr(module, self._main_name, None)
        if not callable(main):
            raise ActionLoadError(self._key(path), f"does not export {self._main_name}")
        return main

    def invalidate(self, path: Optional[Union[str, Path]] = None) -> int:
        """
        Unregister the module loaded for `path` (or for every path), and
        drop the helper modules imported from its directory.

        Returns:
            Number of modules removed from `sys.modules`
        """
        with self._lock:
            if path is None:
                keys = list(self._loaded)
            else:
                keys = [self._key(path)]
            names = [self._loaded.pop(k) for k in keys if k in self._loaded]

        removed = 0
        with _import_lock:
            for name in names:
                if sys.modules.pop(name, None) is not None:
                    removed += 1
            for directory in {str(Path(k).parent) for k in keys}:
                removed += len(drop_modules_from(directory))

        importlib.invalidate_caches()
        logger.debug("invalidated %d module(s) for %s", removed, path or "all actions")
        return removed
