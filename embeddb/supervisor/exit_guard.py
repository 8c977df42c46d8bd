"""
Process-wide registry of cleanup actions run once when the interpreter exits.

Actions are keyed by their owner so an owner can never register twice. A
single atexit hook is installed while the registry holds anything and is
removed again when it empties.
"""
import atexit
import logging
import threading
from typing import Callable, Dict, Hashable, List, Tuple

log = logging.getLogger(__name__)

_registry: Dict[Hashable, Callable[[], None]] = {}
_lock = threading.Lock()
_hook_installed = False


def _install_hook() -> None:
    global _hook_installed
    if not _hook_installed:
        atexit.register(run_all)
        _hook_installed = True


def _remove_hook() -> None:
    global _hook_installed
    if _hook_installed:
        atexit.unregister(run_all)
        _hook_installed = False


def register(key: Hashable, action: Callable[[], None]) -> bool:
    """
    Registers `action` to run at interpreter exit, once per `key`.

    :param key: Identity of the owner of the action.
    :param action: A callable taking no arguments.
    :return bool: False if an action was already registered for `key`.
    """
    with _lock:
        if key in _registry:
            log.debug(f"Exit action for {key!r} is already registered.")
            return False
        _registry[key] = action
        _install_hook()
    log.debug(f"Registered exit action for {key!r}.")
    return True


def unregister(key: Hashable) -> bool:
    """Removes the action registered for `key`. Returns False if there was none."""
    with _lock:
        if _registry.pop(key, None) is None:
            return False
        if not _registry:
            _remove_hook()
    return True


def is_registered(key: Hashable) -> bool:
    with _lock:
        return key in _registry


def run_all() -> None:
    """
    Runs and forgets every registered action.

    The atexit hook itself stays installed; run_all may already be executing
    from it, and with an empty registry a later call does nothing.

    Errors are logged and never propagated; this runs during interpreter
    teardown where nobody is left to handle them.
    """
    with _lock:
        actions: List[Tuple[Hashable, Callable[[], None]]] = list(_registry.items())
        _registry.clear()

    for key, action in actions:
        try:
            action()
        except Exception as e:
            log.error(f"Exit action for {key!r} failed: {e}", exc_info=True)
