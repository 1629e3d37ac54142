import logging

from footageflow.logger import LOGGING_FORMAT, setup_logger
from footageflow.progress import configure, get_progress_config, progress_iter, set_progress


def test_setup_logger_replaces_handlers():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        setup_logger("debug")
        logger = setup_logger("warning")

        assert logger is root
        assert len(root.handlers) == 1
        assert root.level == logging.WARNING
        assert root.handlers[0].formatter._fmt == LOGGING_FORMAT
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)


def test_unknown_level_falls_back_to_info():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        assert setup_logger("verbose").level == logging.INFO
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)


def test_progress_toggle():
    items = [1, 2, 3]
    try:
        set_progress(False)
        assert progress_iter(items) is items

        configure(progress=True)
        assert get_progress_config().progress
        assert list(progress_iter(items, desc="segments", total=3)) == items
    finally:
        set_progress(False)
