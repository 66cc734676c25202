"""Application entry point for the macroplay previewer."""

import logging
import os
import sys
from pathlib import Path

from PySide6.QtWidgets import QApplication

from macroplay.core.engine import PlaybackEngine
from macroplay.core.loader import DefinitionRepository
from macroplay.core.registry import MicrogameRegistry
from macroplay.ui.demo_game import TapTargetGame
from macroplay.ui.main_window import PlayerWindow
from macroplay.ui.timers import QtScheduler


def configure_logging() -> None:
    """Configure application-wide logging with a standard format."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_registry(repository: DefinitionRepository) -> MicrogameRegistry:
    """Register the demo module for every microgame the loaded macrogames use."""
    registry = MicrogameRegistry()
    for definition in repository.all():
        for instance in definition.flow:
            if instance.microgame.id not in registry:
                registry.register(instance.microgame.id, TapTargetGame)
    return registry


def run() -> None:
    """Load definitions, build the engine and start the player window."""
    configure_logging()
    app = QApplication(sys.argv)
    app.setApplicationName("Macroplay")
    app.setApplicationDisplayName("Macroplay")

    data_dir = os.environ.get("MACROPLAY_DATA_DIR")
    repository = DefinitionRepository(Path(data_dir) if data_dir else None)

    key = os.environ.get("MACROPLAY_MACROGAME")
    definition = repository.get(key) if key else repository.all()[0]
    logging.info(f"Playing macrogame: {definition.name} ({len(definition.flow)} games)")

    engine = PlaybackEngine(
        definition,
        QtScheduler(app),
        registry=build_registry(repository),
        conversion_screen=repository.conversion_screen(definition.conversion_screen_id),
        methods=repository.methods(),
        preview_mode=os.environ.get("MACROPLAY_PREVIEW"),
    )
    asset_dir = Path(data_dir) if data_dir else Path(__file__).parent / "data"
    window = PlayerWindow(engine, repository.methods(), asset_dir=asset_dir)
    engine.set_listener(window.refresh)
    window.show()
    engine.start()

    sys.exit(app.exec())
