"""greact: build and develop server-rendered React pages."""

__version__ = "0.1.0"

# Public API
from greact.config import GreactConfig, load_config
from greact.debounce import DebouncedTrigger
from greact.file_watcher import DirectoryWatcher, WatchError
from greact.models import ChangeEvent, ChangeKind, ProcessState, WatchTarget
from greact.notifier import LiveReloadNotifier
from greact.session import DevSession, run_server
from greact.supervisor import ProcessSupervisor

__all__ = [
    "__version__",
    # Models
    "ChangeEvent",
    "ChangeKind",
    "ProcessState",
    "WatchTarget",
    # Components
    "DebouncedTrigger",
    "DirectoryWatcher",
    "WatchError",
    "ProcessSupervisor",
    "LiveReloadNotifier",
    # Session
    "DevSession",
    "run_server",
    # Config
    "GreactConfig",
    "load_config",
]
