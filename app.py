import argparse
import os
import sys
from pathlib import Path

from PySide6.QtGui import QIcon
from PySide6.QtWidgets import QApplication

from overlay_core.config import load_config
from overlay_core.logging_config import init_logging
from overlay_ui.main_window import MainWindow


def _asset_path(*parts: str) -> Path:
    # PyInstaller onefile extracts bundled files under sys._MEIPASS.
    if getattr(sys, "frozen", False):
        return Path(getattr(sys, "_MEIPASS")) / Path(*parts)
    return Path(__file__).resolve().parent / Path(*parts)


def _parse_args(argv):
    parser = argparse.ArgumentParser(description="Key an overlay and place it on a background.")
    parser.add_argument("config", nargs="?", help="editor config JSON")
    parser.add_argument("--log-level", default=os.environ.get("OVERLAY_LOG_LEVEL", "INFO"))
    parser.add_argument("--log-file", default=None)
    # Qt keeps its own arguments (-style, -platform, ...).
    args, _ = parser.parse_known_args(argv)
    return args


def main() -> int:
    args = _parse_args(sys.argv[1:])
    init_logging(args.log_level, args.log_file)

    try:
        config = load_config(args.config) if args.config else None
    except ValueError as e:
        print(f"invalid config {args.config}: {e}", file=sys.stderr)
        return 2

    app = QApplication(sys.argv)
    app.setApplicationName("Overlay Keyer")
    app.setOrganizationName("Overlay Keyer")

    logo_path = _asset_path("assets", "Logo.png")
    if logo_path.exists():
        app.setWindowIcon(QIcon(str(logo_path)))

    w = MainWindow(config=config, logo_path=logo_path)
    w.show()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
