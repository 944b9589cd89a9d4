import sys

from PyQt5.QtWidgets import QApplication

from planmark.config import load_config
from planmark.ui.windows.main_window import MainWindow
from planmark.utils.logger import logger, setup_file_logging
from planmark.utils.paths import get_logs_dir


def main():
    """
    Main function to run the floorplan annotator.
    It checks for a file path passed as a command-line argument.
    """
    setup_file_logging(get_logs_dir())
    config = load_config()

    app = QApplication(sys.argv)

    file_path = None
    if len(sys.argv) > 1:
        file_path = sys.argv[1]
        logger.info("Opening %s from the command line", file_path)

    window = MainWindow(file_path, config)
    window.showMaximized()
    sys.exit(app.exec_())


if __name__ == '__main__':
    main()
