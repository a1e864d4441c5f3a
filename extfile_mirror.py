# /extfile_mirror.py
"""
ExtFile Mirror (no UI)
- Mirrors external markdown files into a managed folder (<vault>/ExternalFile).
- Remembers original path -> mirrored filename in a JSON mapping file.
- Keeps the mapping in sync with the folder: a watchdog observer plus a 1s
  reconcile tick prune rows whose mirrored file is gone.
- "Save As": copies a mirrored file back out to a chosen destination and
  removes the mirrored copy; the row is pruned by the next reconcile.
- Rewrites a small CSS snippet that hides the folder when empty and dims it
  otherwise.
- Remembers the last vault across restarts via ~/.extfile_mirror/config.json
- Styled console output:
  - INGEST / EXPORT green
  - PRUNE / DELETE orange
  - failures / errors red
- Log file is always plain (no color codes).

Usage
  pip install watchdog pathspec colorama
  python extfile_mirror.py --vault "/notes" watch
  python extfile_mirror.py --vault "/notes" ingest ~/drafts/report.md
  python extfile_mirror.py --vault "/notes" export ExternalFile/report-EXTFILE-20240301101530.md --to ~/drafts/report.md
"""

from __future__ import annotations

import argparse
import contextlib
import datetime as dt
import enum
import json
import logging
import os
import shutil
import sys
import tempfile
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

from pathspec import GitIgnoreSpec
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

try:
    from colorama import init as colorama_init  # type: ignore
except Exception:  # pragma: no cover
    colorama_init = None

APP_DIR = Path.home() / ".extfile_mirror"
CONFIG_PATH = APP_DIR / "config.json"

FOLDER_NAME = "ExternalFile"
PLUGIN_ID = "external-file"
MARKER = "EXTFILE"
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
DEFAULT_INTERVAL_SEC = 1.0
DEFAULT_INCLUDE_PATTERNS = ("*.md",)

# watchdog event types that do not change folder contents
READ_ONLY_EVENTS = {"opened", "closed_no_write"}

logger = logging.getLogger("extfile_mirror")


# -------------------------
# Console styling
# -------------------------

class Ansi:
    RESET = "\x1b[0m"
    RED = "\x1b[31m"
    GREEN = "\x1b[32m"
    ORANGE = "\x1b[38;5;208m"
    WHITE = "\x1b[97m"
    LIGHT_BROWN = "\x1b[33m"


ACTION_COLORS = {
    "INGEST": Ansi.GREEN,
    "EXPORT": Ansi.GREEN,
    "PRUNE": Ansi.ORANGE,
    "DELETE": Ansi.ORANGE,
    "CSS": Ansi.LIGHT_BROWN,
    "NOTICE": Ansi.WHITE,
}


def _supports_color(stream) -> bool:
    try:
        return hasattr(stream, "isatty") and stream.isatty()
    except Exception:
        return False


class ColorizingFormatter(logging.Formatter):
    def __init__(self, use_color: bool, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        if not self.use_color:
            return base

        action = getattr(record, "action", None)
        path_text = getattr(record, "path_text", None)

        if record.levelno >= logging.ERROR:
            return f"{Ansi.RED}{base}{Ansi.RESET}"

        if action:
            action_color = ACTION_COLORS.get(action, "")
            if action.endswith("_FAIL"):
                action_color = Ansi.RED
            if action_color and action in base:
                base = base.replace(action, f"{action_color}{action}{Ansi.RESET}", 1)

        if path_text and path_text in base:
            base = base.replace(path_text, f"{Ansi.WHITE}{path_text}{Ansi.RESET}")

        return base


def _today_log_name(prefix: str = "extfile") -> str:
    return f"{prefix}_{dt.date.today().isoformat()}.log"


def setup_logger(log_dir: Path) -> logging.Logger:
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / _today_log_name()

    logger.setLevel(logging.INFO)
    logger.propagate = False

    if logger.handlers:
        return logger

    if colorama_init:
        colorama_init()

    fmt = "%(asctime)s | %(levelname)s | %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"

    fh = logging.FileHandler(log_path, encoding="utf-8")
    fh.setFormatter(logging.Formatter(fmt=fmt, datefmt=datefmt))
    fh.setLevel(logging.INFO)

    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(logging.INFO)
    ch.setFormatter(ColorizingFormatter(use_color=_supports_color(sys.stdout), fmt=fmt, datefmt=datefmt))

    logger.addHandler(fh)
    logger.addHandler(ch)

    logger.info("Logging to: %s", log_path)
    return logger


def log_action(
    action: str,
    message: str,
    path: Optional[Path] = None,
    level: int = logging.INFO,
) -> None:
    extra = {"action": action}
    if path is not None:
        extra["path_text"] = str(path)
    logger.log(level, f"{action} | {message}", extra=extra)


# -------------------------
# Errors
# -------------------------

class ExtFileError(Exception):
    """Base class for failures reported to the user."""


class MappingFileError(ExtFileError):
    """The mapping file exists but does not hold a path -> filename object."""


class NotTrackedError(ExtFileError):
    """A mirrored file has no row in the mapping table."""


class MirrorCollisionError(ExtFileError):
    """The generated mirror filename is already used by another row."""


class ExportError(ExtFileError):
    """The destination chooser failed."""


# -------------------------
# Config / CLI
# -------------------------

@dataclass(frozen=True)
class MirrorConfig:
    vault_dir: Path
    mirror_dir: Path
    data_file: Path
    css_file: Path
    log_dir: Path = Path(".")
    reconcile_interval_sec: float = DEFAULT_INTERVAL_SEC
    include_patterns: tuple[str, ...] = DEFAULT_INCLUDE_PATTERNS

    @classmethod
    def for_vault(
        cls,
        vault_dir: Path,
        log_dir: Optional[Path] = None,
        reconcile_interval_sec: float = DEFAULT_INTERVAL_SEC,
        plugin_id: str = PLUGIN_ID,
        include_patterns: Iterable[str] = DEFAULT_INCLUDE_PATTERNS,
    ) -> "MirrorConfig":
        vault_dir = Path(vault_dir)
        obsidian = vault_dir / ".obsidian"
        return cls(
            vault_dir=vault_dir,
            mirror_dir=vault_dir / FOLDER_NAME,
            data_file=obsidian / "plugins" / plugin_id / "data.json",
            css_file=obsidian / "snippets" / f"hide-{FOLDER_NAME}.css",
            log_dir=Path(log_dir) if log_dir is not None else Path("."),
            reconcile_interval_sec=float(reconcile_interval_sec),
            include_patterns=tuple(include_patterns),
        )

    @property
    def folder_id(self) -> str:
        return self.mirror_dir.name


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Mirror external markdown files into a vault folder.")
    p.add_argument("--vault", type=str, default=None, help="Vault (workspace) folder.")
    p.add_argument("--log-dir", type=str, default=None, help="Directory for log files.")
    p.add_argument("--interval", type=float, default=None, help="Seconds between reconcile passes.")
    p.add_argument("--plugin-id", type=str, default=None, help="Plugin folder holding data.json.")

    sub = p.add_subparsers(dest="command")
    sub.add_parser("watch", help="Watch the mirror folder until Ctrl+C (default).")

    ingest = sub.add_parser("ingest", help="Copy external files into the mirror folder.")
    ingest.add_argument("paths", nargs="+", help="External markdown files.")

    export = sub.add_parser("export", help="Save a mirrored file elsewhere and remove it.")
    export.add_argument("mirrored", help="Mirrored file, absolute or relative to the vault.")
    export.add_argument("--to", type=str, default=None, help="Destination; prompts when omitted.")

    sub.add_parser("reconcile", help="Prune mapping rows whose mirrored file is gone.")
    sub.add_parser("list", help="Print the mapping table.")

    args = p.parse_args(argv)
    if args.command is None:
        args.command = "watch"
    return args


def prompt_for_path(label: str, default: Optional[Path] = None) -> Path:
    while True:
        hint = f" [{default}]" if default else ""
        raw = input(f"{label}{hint}: ").strip().strip('"')
        if not raw and default:
            return default
        if raw:
            return Path(raw)
        print("Please enter a non-empty path.")


def load_config_file() -> dict:
    try:
        if CONFIG_PATH.exists():
            return json.loads(CONFIG_PATH.read_text(encoding="utf-8"))
    except Exception:
        pass
    return {}


def save_config_file(cfg: MirrorConfig, plugin_id: str) -> None:
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "vault": str(cfg.vault_dir),
        "log_dir": str(cfg.log_dir),
        "interval_sec": cfg.reconcile_interval_sec,
        "plugin_id": plugin_id,
    }
    CONFIG_PATH.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def validate_vault(vault: Path) -> Path:
    vault = vault.expanduser().resolve()
    if not vault.exists() or not vault.is_dir():
        raise ValueError(f"Vault folder does not exist or is not a folder: {vault}")
    return vault


def build_effective_config(args: argparse.Namespace) -> tuple[MirrorConfig, str]:
    saved = load_config_file()

    saved_vault = Path(saved["vault"]) if "vault" in saved else None
    saved_log = Path(saved["log_dir"]) if "log_dir" in saved else None
    saved_interval = float(saved.get("interval_sec", DEFAULT_INTERVAL_SEC))
    saved_plugin = saved.get("plugin_id", PLUGIN_ID)

    vault = Path(args.vault) if args.vault else saved_vault
    log_dir = Path(args.log_dir) if args.log_dir else (saved_log or Path("."))
    interval = float(args.interval) if args.interval is not None else saved_interval
    plugin_id = args.plugin_id or saved_plugin

    if vault is None:
        vault = prompt_for_path("Vault folder", saved_vault)

    cfg = MirrorConfig.for_vault(vault, log_dir=log_dir, reconcile_interval_sec=interval, plugin_id=plugin_id)
    return cfg, plugin_id


# -------------------------
# Mapping store
# -------------------------

class MappingStore:
    """
    The original path -> mirrored filename table, persisted as one JSON object.

    Every read-modify-write in this process goes through transaction(), which
    serialises them behind a lock. Other processes writing the same file still
    get last-writer-wins.
    """

    def __init__(self, data_file: Path):
        self.data_file = Path(data_file)
        self._guard = threading.RLock()

    def exists(self) -> bool:
        return self.data_file.exists()

    def load(self) -> dict[str, str]:
        if not self.data_file.exists():
            return {}
        text = self.data_file.read_text(encoding="utf-8")
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise MappingFileError(f"mapping file is not valid JSON: {self.data_file} | {e}") from e
        if not isinstance(data, dict):
            raise MappingFileError(f"mapping file is not an object: {self.data_file}")
        for key, value in data.items():
            if not isinstance(value, str):
                raise MappingFileError(f"mapping value for {key!r} is not a filename: {value!r}")
        return data

    def save(self, table: dict[str, str]) -> None:
        self.data_file.parent.mkdir(parents=True, exist_ok=True)
        text = json.dumps(table, indent=4, ensure_ascii=False)
        fd, tmp = tempfile.mkstemp(prefix=f".{self.data_file.name}.", suffix=".tmp", dir=str(self.data_file.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            if self.data_file.exists():
                shutil.copymode(self.data_file, tmp)
            os.replace(tmp, self.data_file)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp)
            raise

    def ensure_exists(self) -> None:
        with self._guard:
            if not self.data_file.exists():
                self.save({})

    @contextlib.contextmanager
    def transaction(self) -> Iterator[dict[str, str]]:
        with self._guard:
            table = self.load()
            before = dict(table)
            yield table
            if table != before:
                self.save(table)


def find_original(table: dict[str, str], mirrored_name: str) -> Optional[str]:
    for original, name in table.items():
        if name == mirrored_name:
            return original
    return None


# -------------------------
# Visibility
# -------------------------

def folder_is_empty(folder: Path) -> bool:
    with os.scandir(folder) as it:
        return next(it, None) is None


class VisibilityMarker:
    def __init__(
        self,
        css_file: Path,
        folder_id: str = FOLDER_NAME,
        on_style_changed: Optional[Callable[[], None]] = None,
    ):
        self.css_file = Path(css_file)
        self.folder_id = folder_id
        self.on_style_changed = on_style_changed

    def render(self, hidden: bool) -> str:
        if hidden:
            return f'.nav-folder-title[data-path="{self.folder_id}"] {{ display: none; }}\n'
        return (
            f'.nav-folder-title[data-path="{self.folder_id}"] {{ opacity: 0.35; }}\n'
            f'.nav-file-title[data-path^="{self.folder_id}/"] {{ opacity: 0.35; }}\n'
        )

    def ensure_exists(self) -> None:
        if not self.css_file.exists():
            self.css_file.parent.mkdir(parents=True, exist_ok=True)
            self.css_file.write_text("", encoding="utf-8")

    def apply(self, hidden: bool) -> None:
        self.css_file.parent.mkdir(parents=True, exist_ok=True)
        self.css_file.write_text(self.render(hidden), encoding="utf-8")
        if self.on_style_changed is not None:
            self.on_style_changed()

    def refresh(self, mirror_dir: Path) -> bool:
        hidden = folder_is_empty(mirror_dir)
        self.apply(hidden)
        log_action("CSS", "hidden" if hidden else "dimmed", path=self.css_file, level=logging.DEBUG)
        return hidden


# -------------------------
# Reconciler
# -------------------------

class Reconciler:
    def __init__(self, store: MappingStore, mirror_dir: Path):
        self.store = store
        self.mirror_dir = Path(mirror_dir)

    def reconcile(self) -> list[str]:
        """Drop rows whose mirrored file is missing; returns the removed original paths."""
        if not self.store.exists():
            return []

        removed: list[str] = []
        with self.store.transaction() as table:
            present = {entry.name for entry in self.mirror_dir.iterdir()}
            for original, name in list(table.items()):
                if name not in present:
                    del table[original]
                    removed.append(original)

        for original in removed:
            log_action("PRUNE", f"{original} (mirrored file gone)", path=Path(original))
        return removed

    def run_quietly(self) -> list[str]:
        try:
            return self.reconcile()
        except Exception as e:
            log_action("PRUNE_FAIL", f"reconcile error: {e}", level=logging.WARNING)
            return []


# -------------------------
# Ingestion
# -------------------------

class IngestStatus(enum.Enum):
    ALREADY_TRACKED = "already_tracked"
    INGESTED = "ingested"


@dataclass(frozen=True)
class IngestResult:
    status: IngestStatus
    original_path: str
    mirrored_name: str


def mirror_name(source: Path, now: dt.datetime) -> str:
    return f"{Path(source).stem}-{MARKER}-{now.strftime(TIMESTAMP_FORMAT)}.md"


class IngestionService:
    def __init__(
        self,
        store: MappingStore,
        mirror_dir: Path,
        on_change: Optional[Callable[[], None]] = None,
        clock: Callable[[], dt.datetime] = dt.datetime.now,
    ):
        self.store = store
        self.mirror_dir = Path(mirror_dir)
        self.on_change = on_change
        self.clock = clock

    def ingest(self, external_path: Path) -> IngestResult:
        source = Path(os.path.abspath(Path(external_path).expanduser()))
        key = str(source)

        with self.store.transaction() as table:
            existing = table.get(key)
            if existing is not None:
                log_action("SKIP", f"already tracked: {key} -> {existing}", path=source)
                return IngestResult(IngestStatus.ALREADY_TRACKED, key, existing)

            name = mirror_name(source, self.clock())
            if name in table.values():
                raise MirrorCollisionError(f"{name} is already mapped; try again in a second")

            target = self.mirror_dir / name
            if target.exists():
                log_action("INGEST", f"overwriting untracked {target}", path=target, level=logging.WARNING)

            self.mirror_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, target)
            table[key] = name

        log_action("INGEST", f"{source} -> {target}", path=target)
        if self.on_change is not None:
            self.on_change()
        return IngestResult(IngestStatus.INGESTED, key, name)


class IngestFilter:
    def __init__(self, patterns: Iterable[str] = DEFAULT_INCLUDE_PATTERNS):
        self.spec = GitIgnoreSpec.from_lines(list(patterns))

    def accepts(self, path: Path) -> bool:
        return self.spec.match_file(Path(path).name)


# -------------------------
# Export ("save as and remove")
# -------------------------

@dataclass(frozen=True)
class SaveDialogRequest:
    default_path: str
    allowed_extensions: tuple[str, ...] = ("md",)
    filter_name: str = "Markdown Files"


@dataclass(frozen=True)
class SaveDialogResult:
    canceled: bool
    chosen_path: Optional[str] = None


Chooser = Callable[[SaveDialogRequest], SaveDialogResult]


class ExportStatus(enum.Enum):
    SAVED = "saved"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class ExportResult:
    status: ExportStatus
    destination: Optional[Path] = None


class ExportService:
    def __init__(self, store: MappingStore, config: MirrorConfig):
        self.store = store
        self.config = config

    def resolve_mirrored(self, mirrored_path: Path) -> Path:
        path = Path(mirrored_path)
        if not path.is_absolute():
            path = self.config.vault_dir / path
        return path

    def is_mirrored_path(self, vault_relative: str) -> bool:
        parts = Path(vault_relative).parts
        return len(parts) == 2 and parts[0] == self.config.folder_id and parts[1].endswith(".md")

    def export_and_remove(self, mirrored_path: Path, choose_destination: Chooser) -> Optional[Path]:
        """
        Copy a mirrored file to a destination picked by choose_destination, then
        delete the mirrored copy. Returns the destination, or None if the
        chooser was cancelled. The mapping row is left for the reconciler.
        """
        source = self.resolve_mirrored(mirrored_path).resolve()
        if source.parent != self.config.mirror_dir.resolve():
            raise NotTrackedError(f"{source} is not inside {self.config.mirror_dir}")
        if not self.store.exists():
            raise NotTrackedError(f"mapping file does not exist: {self.store.data_file}")

        original = find_original(self.store.load(), source.name)
        if original is None:
            raise NotTrackedError(f"no original path recorded for {source.name}")

        request = SaveDialogRequest(default_path=original)
        try:
            result = choose_destination(request)
        except Exception as e:
            raise ExportError(f"save dialog failed: {e}") from e

        if result.canceled or not result.chosen_path:
            log_action("EXPORT", f"cancelled for {source.name}", path=source)
            return None

        destination = Path(result.chosen_path)
        shutil.copy2(source, destination)
        log_action("EXPORT", f"{source} -> {destination}", path=destination)
        source.unlink()
        log_action("DELETE", f"{source}", path=source)
        return destination


# -------------------------
# Watchdog + reconcile tick
# -------------------------

class MirrorFolderHandler(FileSystemEventHandler):
    def __init__(self, mirror_dir: Path, reconciler: Reconciler, marker: VisibilityMarker):
        self.mirror_dir = Path(mirror_dir)
        self.reconciler = reconciler
        self.marker = marker

    def on_any_event(self, event):
        if event.event_type in READ_ONLY_EVENTS:
            return
        try:
            self.marker.refresh(self.mirror_dir)
        except Exception as e:
            log_action("CSS_FAIL", f"visibility refresh error: {e}", level=logging.ERROR)
        self.reconciler.run_quietly()


class ReconcileTicker(threading.Thread):
    def __init__(self, tick: Callable[[], object], interval_sec: float, stop_event: threading.Event):
        super().__init__(daemon=True)
        self.tick = tick
        self.interval_sec = max(0.05, float(interval_sec))
        self.stop_event = stop_event

    def run(self) -> None:
        logger.info("RECONCILE TICK: started (interval=%.2fs)", self.interval_sec)
        while not self.stop_event.is_set():
            start = time.time()
            try:
                self.tick()
            except Exception as e:
                log_action("PRUNE_FAIL", f"reconcile tick error: {e}", level=logging.ERROR)

            elapsed = time.time() - start
            self.stop_event.wait(max(0.0, self.interval_sec - elapsed))
        logger.info("RECONCILE TICK: stopped")


class MirrorFolderWatch:
    def __init__(self, config: MirrorConfig, reconciler: Reconciler, marker: VisibilityMarker):
        self.config = config
        self.reconciler = reconciler
        self.marker = marker
        self.stop_event = threading.Event()
        self.observer: Optional[Observer] = None
        self.ticker: Optional[ReconcileTicker] = None

    @property
    def is_running(self) -> bool:
        return self.observer is not None

    def start(self) -> None:
        if self.is_running:
            return
        self.config.mirror_dir.mkdir(parents=True, exist_ok=True)
        self.stop_event.clear()

        handler = MirrorFolderHandler(self.config.mirror_dir, self.reconciler, self.marker)
        self.observer = Observer()
        self.observer.schedule(handler, str(self.config.mirror_dir), recursive=False)
        self.ticker = ReconcileTicker(
            tick=self.reconciler.run_quietly,
            interval_sec=self.config.reconcile_interval_sec,
            stop_event=self.stop_event,
        )
        self.observer.start()
        self.ticker.start()
        logger.info("Watching: %s", self.config.mirror_dir)

    def stop(self) -> None:
        if not self.is_running:
            return
        self.stop_event.set()
        self.observer.stop()
        self.observer.join(timeout=10)
        self.ticker.join(timeout=10)
        self.observer = None
        self.ticker = None


# -------------------------
# Application
# -------------------------

def _log_notice(message: str) -> None:
    log_action("NOTICE", message)


@dataclass
class ExternalFileApp:
    config: MirrorConfig
    notify: Callable[[str], None] = _log_notice
    on_style_changed: Optional[Callable[[], None]] = None
    clock: Callable[[], dt.datetime] = dt.datetime.now
    store: MappingStore = field(init=False)
    marker: VisibilityMarker = field(init=False)
    reconciler: Reconciler = field(init=False)
    ingestion: IngestionService = field(init=False)
    export: ExportService = field(init=False)
    watch: MirrorFolderWatch = field(init=False)
    ingest_filter: IngestFilter = field(init=False)

    def __post_init__(self):
        self.store = MappingStore(self.config.data_file)
        self.marker = VisibilityMarker(self.config.css_file, self.config.folder_id, self.on_style_changed)
        self.reconciler = Reconciler(self.store, self.config.mirror_dir)
        self.ingestion = IngestionService(
            self.store, self.config.mirror_dir, on_change=self.refresh_visibility, clock=self.clock
        )
        self.export = ExportService(self.store, self.config)
        self.watch = MirrorFolderWatch(self.config, self.reconciler, self.marker)
        self.ingest_filter = IngestFilter(self.config.include_patterns)

    def prepare(self) -> None:
        self.config.mirror_dir.mkdir(parents=True, exist_ok=True)
        self.store.ensure_exists()
        self.marker.ensure_exists()
        self.refresh_visibility()

    def start(self) -> None:
        self.prepare()
        self.watch.start()

    def stop(self) -> None:
        self.watch.stop()

    def refresh_visibility(self) -> bool:
        return self.marker.refresh(self.config.mirror_dir)

    def on_layout_change(self) -> None:
        self.refresh_visibility()

    def handle_dropped_files(self, paths: Iterable[Path]) -> list[IngestResult]:
        results: list[IngestResult] = []
        for path in paths:
            path = Path(path)
            if not self.ingest_filter.accepts(path):
                log_action("SKIP", f"not a markdown file: {path}", path=path)
                continue
            try:
                result = self.ingestion.ingest(path)
            except (ExtFileError, OSError) as e:
                log_action("INGEST_FAIL", f"{path} | {e}", path=path, level=logging.ERROR)
                self.notify(f"Could not add {path.name}: {e}")
                continue
            if result.status is IngestStatus.ALREADY_TRACKED:
                self.notify(f"{path.name} already added")
            results.append(result)
        return results

    def save_as_available(self, vault_relative: str) -> bool:
        return self.export.is_mirrored_path(vault_relative)

    def save_as(self, mirrored_path: Path, choose_destination: Chooser) -> ExportResult:
        try:
            destination = self.export.export_and_remove(mirrored_path, choose_destination)
        except NotTrackedError as e:
            log_action("EXPORT_FAIL", str(e), level=logging.WARNING)
            if not self.store.exists():
                self.notify("Mapping file does not exist")
            else:
                self.notify("Original file path not found")
            return ExportResult(ExportStatus.FAILED)
        except (ExtFileError, OSError) as e:
            log_action("EXPORT_FAIL", f"{mirrored_path} | {e}", level=logging.ERROR)
            self.notify(f"Error saving file: {e}")
            return ExportResult(ExportStatus.FAILED)

        if destination is None:
            return ExportResult(ExportStatus.CANCELLED)
        self.notify("File saved and removed")
        return ExportResult(ExportStatus.SAVED, destination)


# -------------------------
# Main
# -------------------------

def prompt_save_dialog(request: SaveDialogRequest) -> SaveDialogResult:
    raw = input(f"Save as [{request.default_path}] ('n' to cancel): ").strip().strip('"')
    if raw.lower() == "n":
        return SaveDialogResult(canceled=True)
    return SaveDialogResult(canceled=False, chosen_path=raw or request.default_path)


def fixed_destination(destination: str) -> Chooser:
    def choose(request: SaveDialogRequest) -> SaveDialogResult:
        return SaveDialogResult(canceled=False, chosen_path=str(Path(destination).expanduser()))

    return choose


def run_watch(app: ExternalFileApp) -> int:
    app.start()
    logger.info("Starting watcher... (Ctrl+C to stop)")
    try:
        while True:
            time.sleep(0.5)
    except KeyboardInterrupt:
        logger.info("Stopping...")
    finally:
        app.stop()
        logger.info("Stopped.")
    return 0


def run_command(app: ExternalFileApp, args: argparse.Namespace) -> int:
    if args.command == "watch":
        return run_watch(app)

    app.prepare()

    if args.command == "ingest":
        results = app.handle_dropped_files(Path(p) for p in args.paths)
        for r in results:
            print(f"{r.status.value}\t{r.original_path}\t{r.mirrored_name}")
        return 0 if len(results) == len(args.paths) else 1

    if args.command == "export":
        chooser = fixed_destination(args.to) if args.to else prompt_save_dialog
        result = app.save_as(Path(args.mirrored), chooser)
        app.reconciler.run_quietly()
        app.refresh_visibility()
        if result.status is ExportStatus.FAILED:
            return 1
        if result.destination is not None:
            print(result.destination)
        return 0

    if args.command == "reconcile":
        try:
            removed = app.reconciler.reconcile()
        except (ExtFileError, OSError) as e:
            logger.error("Reconcile failed: %s", e)
            return 1
        for original in removed:
            print(original)
        return 0

    if args.command == "list":
        try:
            table = app.store.load()
        except (ExtFileError, OSError) as e:
            logger.error("Could not read mapping: %s", e)
            return 1
        for original, name in table.items():
            print(f"{original}\t{name}")
        return 0

    logger.error("Unknown command: %s", args.command)
    return 2


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    cfg, plugin_id = build_effective_config(args)

    setup_logger(cfg.log_dir)

    try:
        vault = validate_vault(cfg.vault_dir)
        cfg = MirrorConfig.for_vault(
            vault,
            log_dir=cfg.log_dir.expanduser().resolve(),
            reconcile_interval_sec=cfg.reconcile_interval_sec,
            plugin_id=plugin_id,
            include_patterns=cfg.include_patterns,
        )
        logger.info("Vault : %s", cfg.vault_dir)
        logger.info("Mirror: %s", cfg.mirror_dir)
    except Exception as e:
        logger.error("Config error: %s", e)
        return 2

    try:
        save_config_file(cfg, plugin_id)
        logger.info("Saved config: %s", CONFIG_PATH)
    except Exception as e:
        logger.error("Could not save config: %s", e)

    app = ExternalFileApp(cfg)
    return run_command(app, args)


if __name__ == "__main__":
    raise SystemExit(main())
