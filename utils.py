"""
AutomataFlow - Utility Functions, Settings and Diagram Files
Handles editor settings, logging setup and diagram file operations.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional
import json
import logging
import sys

from models import DiagramData
from undo import UndoManager


logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "settings.json"
DIAGRAM_SUFFIX = ".flow.json"
LOG_FORMAT = "%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s: %(message)s"


def get_app_root() -> Path:
    """Get the application root directory."""
    return Path(__file__).parent.resolve()


def get_settings_path() -> Path:
    return get_app_root() / SETTINGS_FILENAME


def ensure_directory(path: Path) -> None:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)


_logging_configured = False


def setup_logging(level: str = "WARNING") -> None:
    """
    Configure console logging for the application.
    Safe to call more than once; only the first call installs a handler,
    later calls only change the level.
    """
    global _logging_configured
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.WARNING))
    if _logging_configured:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
    root.addHandler(handler)
    _logging_configured = True


# ============================================================================
# Settings
# ============================================================================

@dataclass
class ColorScheme:
    """Colors used to draw the diagram."""
    state_fill: str = "#FFFFFF"
    state_stroke: str = "#37474F"
    accept_stroke: str = "#4CAF50"
    selected_stroke: str = "#00BCD4"
    state_label: str = "#212121"
    start_marker: str = "#FF9800"
    transition_arrow: str = "#607D8B"
    transition_selected_arrow: str = "#FF5722"
    transition_label: str = "#212121"
    grid: str = "#E0E0E0"
    background: str = "#FAFAFA"

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict) -> "ColorScheme":
        known = {f.name for f in fields(cls)}
        return cls(**{k: str(v) for k, v in data.items() if k in known})


@dataclass
class EditorSettings:
    """User-editable settings, stored next to the application."""
    color_scheme: ColorScheme = field(default_factory=ColorScheme)
    grid_size: int = 25
    log_level: str = "WARNING"
    window_width: int = 1200
    window_height: int = 800

    def to_dict(self) -> dict:
        return {
            "color_scheme": self.color_scheme.to_dict(),
            "grid_size": self.grid_size,
            "log_level": self.log_level,
            "window_width": self.window_width,
            "window_height": self.window_height
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EditorSettings":
        defaults = cls()
        return cls(
            color_scheme=ColorScheme.from_dict(data.get("color_scheme", {})),
            grid_size=int(data.get("grid_size", defaults.grid_size)),
            log_level=str(data.get("log_level", defaults.log_level)),
            window_width=int(data.get("window_width", defaults.window_width)),
            window_height=int(data.get("window_height", defaults.window_height))
        )


def load_settings(path: Optional[Path] = None) -> EditorSettings:
    """Load settings, falling back to defaults if the file is missing or broken."""
    path = path or get_settings_path()
    if not path.exists():
        return EditorSettings()

    try:
        with open(path, "r", encoding="utf-8") as f:
            return EditorSettings.from_dict(json.load(f))
    except (json.JSONDecodeError, OSError, TypeError, ValueError, AttributeError) as e:
        logger.warning("Could not load settings from %s: %s", path, e)
        return EditorSettings()


def save_settings(settings: EditorSettings, path: Optional[Path] = None) -> bool:
    path = path or get_settings_path()
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(settings.to_dict(), f, indent=2, ensure_ascii=False)
        return True
    except OSError as e:
        logger.warning("Could not save settings to %s: %s", path, e)
        return False


# ============================================================================
# Diagram files
# ============================================================================

class DiagramFileManager:
    """
    Opens and saves the diagram being edited.

    The DiagramData object itself is kept for the whole session: opening a
    file swaps its contents in place, so actions and canvas items that hold
    a reference to it stay valid. History is reset on open and marked clean
    on open and save.
    """

    def __init__(self, diagram: DiagramData, history: UndoManager):
        self.diagram = diagram
        self.history = history
        self.current_path: Optional[Path] = None

    @property
    def is_file_open(self) -> bool:
        return self.current_path is not None

    @property
    def display_name(self) -> str:
        if self.current_path is None:
            return "Untitled"
        name = self.current_path.name
        if name.endswith(DIAGRAM_SUFFIX):
            name = name[:-len(DIAGRAM_SUFFIX)]
        return name

    def new_diagram(self) -> None:
        self._replace_contents(DiagramData())
        self.current_path = None
        self.history.reset()
        self.history.mark_clean()

    def open_diagram(self, path: Path) -> bool:
        """
        Load a diagram from disk.
        Returns True if successful; on failure the current diagram is untouched.
        """
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded = DiagramData.from_json(f.read())
        except (ValueError, OSError, TypeError, AttributeError) as e:
            # ValueError covers JSONDecodeError, UnicodeDecodeError and bad numbers
            logger.warning("Error loading diagram %s: %s", path, e)
            return False

        self._replace_contents(loaded)
        self.current_path = path
        self.history.reset()
        self.history.mark_clean()
        logger.info("Opened diagram %s", path)
        return True

    def save_diagram(self, path: Optional[Path] = None) -> bool:
        """
        Save the diagram, to path if given, else to the current file.
        Returns True if successful.
        """
        target = Path(path) if path is not None else self.current_path
        if target is None:
            return False

        try:
            ensure_directory(target.parent)
            with open(target, "w", encoding="utf-8") as f:
                f.write(self.diagram.to_json(indent=2))
        except OSError as e:
            logger.warning("Error saving diagram %s: %s", target, e)
            return False

        self.current_path = target
        self.history.mark_clean()
        logger.info("Saved diagram %s", target)
        return True

    def _replace_contents(self, other: DiagramData) -> None:
        self.diagram.states = other.states
        self.diagram.transitions = other.transitions
        self.diagram.start_state_id = other.start_state_id
