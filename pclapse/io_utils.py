# io_utils.py
import atexit
import os
import signal
import threading

from .utils import get_logger, vprint

_logger = get_logger()

# output files still being written; removed if the process dies mid-export
_in_progress = []
_lock = threading.Lock()

def register_partial_path(path):
    with _lock:
        if path not in _in_progress:
            _in_progress.append(path)
            vprint("Registered partial output:", path)

def unregister_partial_path(path):
    with _lock:
        if path in _in_progress:
            _in_progress.remove(path)
            vprint("Unregistered partial output:", path)

def cleanup_partial_outputs():
    with _lock:
        paths = list(_in_progress)
    for p in reversed(paths):
        try:
            remove_file(p)
            vprint("Removed partial output:", p)
        except OSError as e:
            _logger.exception("Failed to remove partial output %s: %s", p, e)
        finally:
            unregister_partial_path(p)

def install_cleanup_handlers(on_interrupt=None):
    """
    Register exit/signal cleanup. Called by the CLI, not on import.
    The first signal calls on_interrupt (cooperative cancel) when given; a
    second one, or any signal without a callback, removes partial outputs
    and raises KeyboardInterrupt.
    """
    interrupted = threading.Event()

    def _signal_handler(sig, frame):
        if on_interrupt is not None and not interrupted.is_set():
            interrupted.set()
            _logger.info("Signal %s received -> cancelling export.", sig)
            on_interrupt()
            return
        _logger.info("Signal %s received -> removing partial outputs.", sig)
        cleanup_partial_outputs()
        raise KeyboardInterrupt

    atexit.register(cleanup_partial_outputs)
    for s in (signal.SIGINT, signal.SIGTERM):
        try:
            signal.signal(s, _signal_handler)
        except ValueError:
            # not the main thread
            _logger.debug("Cannot install handler for signal %s", s)

def ensure_dir(path):
    os.makedirs(path, exist_ok=True)

def list_png_files(folder):
    return sorted([os.path.join(folder, f) for f in os.listdir(folder) if f.lower().endswith(".png")])

def remove_file(path):
    """Remove ``path`` if it exists. Returns True when something was removed."""
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False

def is_writable_dir(path):
    return os.path.isdir(path) and os.access(path, os.W_OK | os.X_OK)
