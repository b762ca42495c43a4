from __future__ import annotations

import asyncio
import logging
import os
import sys

import qasync
from PySide6.QtGui import QIcon
from PySide6.QtWidgets import QApplication

from nodian import __version__
from nodian.main_window import MainWindow, OutputPanelHandler
from nodian.services import JsonFileStore, LocalFileSystem
from nodian.settings import configure_logging, load_settings
from nodian.workspace import WorkspaceController

logger = logging.getLogger(__name__)


def _resolve_app_icon() -> QIcon | None:
    module_dir = os.path.dirname(__file__)
    project_root = os.path.abspath(os.path.join(module_dir, os.pardir))
    candidate_dirs = (
        os.path.join(project_root, "assets"),
        os.path.join(module_dir, "assets"),
    )
    for assets_dir in candidate_dirs:
        for filename in ("nodian_logo.ico", "nodian_logo.png"):
            icon_path = os.path.join(assets_dir, filename)
            if os.path.isfile(icon_path):
                icon = QIcon(icon_path)
                if not icon.isNull():
                    return icon
    return None


def build_controller() -> WorkspaceController:
    settings = load_settings()
    configure_logging(settings.log_level)
    logger.info("[settings] Loaded %s", settings.settings_path)
    return WorkspaceController(
        LocalFileSystem(default_root=settings.default_root),
        JsonFileStore(settings.session_path),
        restore_session=settings.restore_session,
    )


def run() -> int:
    app = QApplication(sys.argv)
    app.setApplicationName("Nodian")
    app.setOrganizationName("Nodian")
    app.setApplicationVersion(__version__)
    app_icon = _resolve_app_icon()
    if app_icon is not None:
        app.setWindowIcon(app_icon)

    loop = qasync.QEventLoop(app)
    asyncio.set_event_loop(loop)

    controller = build_controller()
    window = MainWindow(controller)
    output_handler = OutputPanelHandler()
    window.attach_log_handler(output_handler)
    logging.getLogger("nodian").addHandler(output_handler)
    if app_icon is not None:
        window.setWindowIcon(app_icon)
    window.show()

    app.aboutToQuit.connect(loop.stop)
    with loop:
        loop.call_soon(window.start)
        loop.run_forever()
    logging.getLogger("nodian").removeHandler(output_handler)
    return 0


if __name__ == "__main__":
    sys.exit(run())
