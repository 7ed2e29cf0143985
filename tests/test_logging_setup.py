import logging
from logging.handlers import RotatingFileHandler

from sshconn.logging_setup import setup_logging


def test_setup_logging_writes_rotating_file(tmp_path):
    root = logging.getLogger()
    saved = list(root.handlers), root.level
    try:
        path = setup_logging(verbose=False, console=False, log_dir=str(tmp_path))
        logging.getLogger("sshconn.test").info("hello from the test")

        file_handlers = [h for h in root.handlers if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert file_handlers[0].maxBytes == 10 * 1024 * 1024
        assert file_handlers[0].backupCount == 5
        assert not any(type(h) is logging.StreamHandler for h in root.handlers)
        file_handlers[0].flush()
        assert "hello from the test" in open(path, encoding="utf-8").read()
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in saved[0]:
            root.addHandler(handler)
        root.setLevel(saved[1])


def test_verbose_console_handler(tmp_path):
    root = logging.getLogger()
    saved = list(root.handlers), root.level
    try:
        setup_logging(verbose=True, console=True, log_dir=str(tmp_path))

        console = [h for h in root.handlers if type(h) is logging.StreamHandler]
        assert len(console) == 1
        assert console[0].level == logging.DEBUG
        assert root.level == logging.DEBUG
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in saved[0]:
            root.addHandler(handler)
        root.setLevel(saved[1])
        logging.getLogger("sshconn").setLevel(logging.NOTSET)
