"""
Action source watcher.

Polls the action sources for changes and rebuilds the affected actions.
Only one build runs at a time: changes that arrive during a build are
queued and built, in order, once it finishes.
"""

import logging
import os
import threading
from collections import deque
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from .loader import CodeLoader
from .models import Manifest

logger = logging.getLogger(__name__)

BuildFn = Callable[[List[str]], None]
NamesFromPath = Callable[[str], List[str]]


def _to_unix(path: Union[str, Path]) -> str:
    return str(path).replace("\\", "/")


def action_names_from_path(file_path: Union[str, Path], manifest: Manifest) -> List[str]:
    """
    All actions whose function path contains `file_path`.

    Args:
        file_path: Path of the changed file
        manifest: The manifest the actions are declared in

    Returns:
        Names of the matching actions, possibly empty
    """
    unix_path = _to_unix(file_path)
    names = []
    for package in manifest.packages.values():
        for action_name, action in package.actions.items():
            if unix_path in _to_unix(action.function):
                names.append(action_name)
    return names


def affected_action_names(file_path: Union[str, Path], manifest: Manifest) -> List[str]:
    """
    Actions to rebuild when `file_path` changes.

    The actions defined in the file itself, or for any other Python file,
    the actions whose directory contains it (they may import it).
    """
    names = action_names_from_path(file_path, manifest)
    if names or Path(file_path).suffix != ".py":
        return names
    changed = Path(file_path).resolve()
    for package in manifest.packages.values():
        for action_name, action in package.actions.items():
            if Path(action.function).resolve().parent in changed.parents:
                names.append(action_name)
    return names


class ChangeHandler:
    """
    Serializes builds triggered by file changes.

    Calling the handler while a build is in progress only queues the path;
    the call that started the build drains the queue before returning.
    A failing build stops the watcher, which ends auto refresh.
    """

    def __init__(
        self,
        build: BuildFn,
        names_from_path: NamesFromPath,
        on_fatal: Optional[Callable[[], None]] = None,
    ):
        self._build = build
        self._names_from_path = names_from_path
        self._on_fatal = on_fatal
        self._queue: deque = deque()
        self._lock = threading.Lock()
        self._in_progress = False

    @property
    def build_in_progress(self) -> bool:
        return self._in_progress

    @property
    def pending(self) -> List[str]:
        with self._lock:
            return list(self._queue)

    def _process_change(self, file_path: str) -> None:
        try:
            logger.info("%s has changed. Building action.", file_path)
            action_names = self._names_from_path(file_path)
            if not action_names:
                logger.debug("A non-action file was changed, no build was done.")
            else:
                self._build(action_names)
                logger.info("Build was successful for: %s", ",".join(action_names))
        except Exception:
            logger.exception("Error encountered while building actions. Stopping auto refresh.")
            if self._on_fatal is not None:
                self._on_fatal()

    def _next(self) -> Optional[str]:
        with self._lock:
            if self._queue:
                return self._queue.popleft()
            self._in_progress = False
            return None

    def __call__(self, file_path: str) -> None:
        with self._lock:
            if self._in_progress:
                logger.debug(
                    "%s has changed. A build is in progress. This change will be built "
                    "after completion of current build.", file_path
                )
                self._queue.append(file_path)
                return
            self._in_progress = True

        self._process_change(file_path)
        next_path = self._next()
        while next_path is not None:
            self._process_change(next_path)
            next_path = self._next()


def invalidating_build(manifest: Manifest, loader: CodeLoader) -> BuildFn:
    """
    Build step for Python actions: unregister the loaded module of each
    action and drop the helper modules imported from its directory, so the
    next invocation compiles the new source of both.
    """
    functions: Dict[str, List[str]] = {}
    for package in manifest.packages.values():
        for action_name, action in package.actions.items():
            functions.setdefault(action_name, []).append(action.function)

    def build(action_names: List[str]) -> None:
        for name in action_names:
            for function in functions.get(name, []):
                loader.invalidate(function)

    return build


class ActionWatcher:
    """
    Polling watcher over a source directory.

    Scans file modification times every `interval` seconds on a daemon
    thread and hands each changed file to the change handler.
    """

    def __init__(
        self,
        src: Union[str, Path],
        manifest: Manifest,
        build: Optional[BuildFn] = None,
        loader: Optional[CodeLoader] = None,
        interval: float = 1.0,
    ):
        self.src = Path(src)
        self.interval = interval
        if build is None:
            build = invalidating_build(manifest, loader or CodeLoader())
        self.handler = ChangeHandler(
            build,
            lambda path: affected_action_names(path, manifest),
            on_fatal=self.stop,
        )
        self._mtimes: Optional[Dict[str, float]] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _scan(self) -> Dict[str, float]:
        mtimes = {}
        if self.src.is_file():
            files = [self.src]
        else:
            files = (p for p in self.src.rglob("*") if p.is_file())
        for path in files:
            try:
                mtimes[str(path.resolve())] = os.stat(path).st_mtime
            except FileNotFoundError:
                continue
        return mtimes

    def poll(self) -> List[str]:
        """Compare with the previous scan; returns and handles the changed files."""
        current = self._scan()
        if self._mtimes is None:
            # first scan is the baseline
            self._mtimes = current
            return []
        changed = [p for p, m in current.items() if self._mtimes.get(p) != m]
        self._mtimes = current
        for path in changed:
            self.handler(path)
        return changed

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.poll()

    def start(self) -> None:
        logger.info("watching action files at %s...", self.src)
        self._mtimes = self._scan()
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="owdev-watcher", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        logger.debug("stopping action watcher...")
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.interval * 2)
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and not self._stop.is_set()
